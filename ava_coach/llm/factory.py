import logging

from openai import AsyncOpenAI

logger = logging.getLogger("ava_coach.llm")


class LLMFactory:
    """Builds the async chat client. Settings come in through configure()."""

    SUPPORTED_PROVIDERS = ("openai", "openai_compatible")

    _api_key: str = ""
    _base_url: str = "https://api.openai.com/v1"
    _timeout: float = 120.0
    _max_retries: int = 2

    @classmethod
    def configure(
        cls,
        api_key: str,
        base_url: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
    ) -> None:
        cls._api_key = api_key
        if base_url:
            cls._base_url = base_url
        cls._timeout = timeout
        cls._max_retries = max_retries

    @classmethod
    def create_async_client(cls, provider: str = "openai") -> AsyncOpenAI:
        if provider not in cls.SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported provider: {provider}")
        logger.info("Creating %s client for %s", provider, cls._base_url)
        return AsyncOpenAI(
            api_key=cls._api_key,
            base_url=cls._base_url,
            timeout=cls._timeout,
            max_retries=cls._max_retries,
        )
