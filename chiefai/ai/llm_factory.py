"""
Gemini client factory and the text-generation adapter the pipeline calls

Clients are cached per (model, temperature, max_tokens) so detection (low
temperature, short output) and drafting (higher temperature) do not
rebuild clients on every message.

Usage:
    from chiefai.ai.llm_factory import LangChainTextGenerator
    from chiefai.utils.config import load_config

    generator = LangChainTextGenerator(load_config())
    text = await generator.generate({'system': '...', 'prompt': '...', 'temperature': 0.2})
"""
from threading import Lock
from typing import Any, Dict, Optional, Tuple

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from ..utils.config import Config
from ..utils.logger import setup_logger

logger = setup_logger(__name__)

GEMINI_ALIASES: Tuple[str, ...] = ("gemini", "google")
DEFAULT_TRANSPORT = "rest"  # REST is more stable than gRPC for Google

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0
MIN_MAX_TOKENS = 1
MAX_MAX_TOKENS = 100000


class LLMFactory:
    """
    Thread-safe cache of ChatGoogleGenerativeAI clients.
    """

    _lock: Lock = Lock()
    _clients: Dict[Tuple[str, float, int], ChatGoogleGenerativeAI] = {}

    @staticmethod
    def _validate_config(config: Config) -> None:
        """
        Raises:
            ValueError: missing key or a provider other than Gemini
        """
        if not config or not config.ai:
            raise ValueError("Config must have an 'ai' section")
        if not config.ai.api_key:
            raise ValueError("API key is required in config.ai.api_key")
        provider = (config.ai.provider or '').lower()
        if provider not in GEMINI_ALIASES:
            raise ValueError(
                f"Unsupported provider: '{provider}'. "
                f"Only Gemini/Google providers are supported: {', '.join(GEMINI_ALIASES)}"
            )

    @staticmethod
    def _validate_temperature(temperature: float) -> None:
        if not (MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE):
            raise ValueError(
                f"Temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}, "
                f"got {temperature}"
            )

    @staticmethod
    def _validate_max_tokens(max_tokens: int) -> None:
        if not (MIN_MAX_TOKENS <= max_tokens <= MAX_MAX_TOKENS):
            raise ValueError(
                f"max_tokens must be between {MIN_MAX_TOKENS} and {MAX_MAX_TOKENS}, "
                f"got {max_tokens}"
            )

    @classmethod
    def get_llm(
        cls,
        config: Config,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> ChatGoogleGenerativeAI:
        """
        Get or create a Gemini client.

        Raises:
            ValueError: invalid config or parameters, or client creation failed
        """
        cls._validate_config(config)
        temp = temperature if temperature is not None else config.ai.temperature
        tokens = max_tokens or config.ai.max_tokens
        cls._validate_temperature(temp)
        cls._validate_max_tokens(tokens)

        key = (config.ai.model, temp, tokens)
        with cls._lock:
            client = cls._clients.get(key)
            if client is None:
                try:
                    client = ChatGoogleGenerativeAI(
                        model=config.ai.model,
                        google_api_key=config.ai.api_key,
                        temperature=temp,
                        max_output_tokens=tokens,
                        transport=DEFAULT_TRANSPORT,
                    )
                except Exception as e:
                    logger.error(f"[LLMFactory] Failed to create Gemini client: {e}")
                    raise ValueError(f"Failed to create Gemini client: {e}") from e
                cls._clients[key] = client
                logger.debug(f"[LLMFactory] Created Gemini client (model={config.ai.model}, temp={temp}, max_tokens={tokens})")
        return client

    @classmethod
    def reset(cls) -> None:
        """Drop cached clients (tests, key rotation)."""
        with cls._lock:
            cls._clients.clear()
        logger.info("[LLMFactory] Reset cached clients")

    @classmethod
    def get_cache_stats(cls) -> Dict[str, int]:
        return {'cached_clients': len(cls._clients)}


def extract_content(message: Any) -> str:
    """
    Text of a chat model reply. Gemini may return a list of content parts.
    """
    content = getattr(message, 'content', message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get('type', 'text') == 'text':
                parts.append(part.get('text', ''))
        return ''.join(parts)
    return str(content)


class LangChainTextGenerator:
    """
    Text generation over a LangChain chat model.

    ``prompt_context`` keys: ``system``, ``prompt``, optional ``temperature``
    and ``max_tokens``. Passing ``llm`` pins one model and ignores the
    per-call sampling settings.
    """

    def __init__(self, config: Config, llm: Optional[BaseChatModel] = None):
        self.config = config
        self.llm = llm

    def _model_for(self, prompt_context: Dict[str, Any]) -> BaseChatModel:
        if self.llm is not None:
            return self.llm
        return LLMFactory.get_llm(
            self.config,
            temperature=prompt_context.get('temperature'),
            max_tokens=prompt_context.get('max_tokens'),
        )

    async def generate(self, prompt_context: Dict[str, Any]) -> str:
        messages = []
        if prompt_context.get('system'):
            messages.append(SystemMessage(content=prompt_context['system']))
        messages.append(HumanMessage(content=prompt_context.get('prompt', '')))

        reply = await self._model_for(prompt_context).ainvoke(messages)
        text = extract_content(reply)
        logger.debug(f"[LangChainTextGenerator] {prompt_context.get('task', 'generate')}: {len(text)} chars")
        return text
