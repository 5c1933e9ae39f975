from typing import Awaitable, Callable, Dict, List, Optional
from flowcore.config import settings
from flowcore.core.logging import get_logger
from openai import AsyncOpenAI
from anthropic import AsyncAnthropic

logger = get_logger("integrations.llm")

# Node configs may name Anthropic as "claude"
PROVIDER_ALIASES = {"claude": "anthropic"}

class LLMConfigurationError(ValueError):
    """Unknown provider or missing API key; raised before any network call."""

def _messages(user_prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})
    return messages

class LLMProvider:
    """Chat completion over the configured OpenAI and Anthropic clients."""

    _clients: Dict[str, object] = {}

    @classmethod
    def _client(cls, provider: str):
        if provider not in cls._clients:
            if provider == "openai":
                if not settings.OPENAI_API_KEY:
                    raise LLMConfigurationError("OPENAI_API_KEY is not configured")
                cls._clients[provider] = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
            elif provider == "anthropic":
                if not settings.ANTHROPIC_API_KEY:
                    raise LLMConfigurationError("ANTHROPIC_API_KEY is not configured")
                cls._clients[provider] = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        return cls._clients[provider]

    @classmethod
    async def _openai(cls, model: str, user_prompt: str, system_prompt: Optional[str], temperature: float, max_tokens: int) -> str:
        response = await cls._client("openai").chat.completions.create(
            model=model,
            messages=_messages(user_prompt, system_prompt),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""

    @classmethod
    async def _anthropic(cls, model: str, user_prompt: str, system_prompt: Optional[str], temperature: float, max_tokens: int) -> str:
        kwargs = {"system": system_prompt} if system_prompt else {}
        response = await cls._client("anthropic").messages.create(
            model=model,
            messages=[{"role": "user", "content": user_prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
            **kwargs,
        )
        # Concatenate text blocks; tool-use blocks carry no text
        return "".join(getattr(block, "text", "") for block in response.content)

    @staticmethod
    async def chat_completion(
        provider: str,
        model: str,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        provider = PROVIDER_ALIASES.get(provider, provider)
        handlers: Dict[str, Callable[..., Awaitable[str]]] = {
            "openai": LLMProvider._openai,
            "anthropic": LLMProvider._anthropic,
        }
        if provider not in handlers:
            raise LLMConfigurationError(f"Unsupported LLM provider: {provider}")

        logger.info(f"Chat completion: provider={provider} model={model} prompt_chars={len(user_prompt)}")
        try:
            return await handlers[provider](model, user_prompt, system_prompt, temperature, max_tokens)
        except LLMConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Chat completion failed ({provider}/{model}): {e}")
            raise
