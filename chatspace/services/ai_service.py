"""AI assistant service: chat completions via Groq, OpenAI or Anthropic."""

import asyncio
import logging
import secrets
from typing import Dict, List, Optional, Tuple

from anthropic import AsyncAnthropic, APIError as AnthropicAPIError
from groq import AsyncGroq, APIError as GroqAPIError
from openai import AsyncOpenAI, APIError, RateLimitError, APITimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from chatspace.core.config import get_settings
from chatspace.models.message import Message
from chatspace.models.user import User
from chatspace.services.auth_service import AuthService
from chatspace.services.message_service import MessageService

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
INITIAL_BACKOFF = 1.0  # seconds

FALLBACK_REPLY = "Sorry, I couldn't generate a response."

settings = get_settings()

UPSTREAM_ERRORS = (APIError, RateLimitError, APITimeoutError, GroqAPIError, AnthropicAPIError)


class AIConfigurationError(RuntimeError):
    """The selected LLM provider is unknown or has no API key."""


class AIServiceError(RuntimeError):
    """The LLM provider failed after all retries."""


class AIService:
    """Thin async wrapper over the configured chat-completion provider."""

    def __init__(self):
        self.provider = settings.llm_provider.lower()

        if self.provider == "groq":
            if not settings.groq_api_key:
                raise AIConfigurationError("GROQ_API_KEY not configured")
            self.client = AsyncGroq(api_key=settings.groq_api_key, timeout=60.0)
        elif self.provider == "openai":
            if not settings.openai_api_key:
                raise AIConfigurationError("OPENAI_API_KEY not configured")
            self.client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=60.0)
        elif self.provider == "anthropic":
            if not settings.anthropic_api_key:
                raise AIConfigurationError("ANTHROPIC_API_KEY not configured")
            self.client = AsyncAnthropic(api_key=settings.anthropic_api_key, timeout=60.0)
        else:
            raise AIConfigurationError(f"Unsupported LLM provider: {self.provider}")

    # =============================================
    # Completion (with retry)
    # =============================================
    async def complete(self, messages: List[Dict[str, str]], model: Optional[str] = None) -> str:
        """Return the assistant's reply to a role/content message list."""
        model = model or settings.ai_model
        last_error = None
        for attempt in range(MAX_RETRIES):
            try:
                reply = await self._complete_impl(messages, model)
                return reply.strip() if reply and reply.strip() else FALLBACK_REPLY
            except UPSTREAM_ERRORS as e:
                last_error = e
                if attempt < MAX_RETRIES - 1:
                    delay = INITIAL_BACKOFF * (2 ** attempt)
                    logger.warning(f"AI completion failed (attempt {attempt + 1}/{MAX_RETRIES}): {e}. Retrying in {delay}s...")
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"AI completion failed after {MAX_RETRIES} attempts: {e}")
        raise AIServiceError("AI provider unavailable") from last_error

    async def _complete_impl(self, messages: List[Dict[str, str]], model: str) -> Optional[str]:
        if self.provider in ("groq", "openai"):
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=settings.ai_temperature,
                max_tokens=settings.ai_max_tokens,
            )
            if not response.choices:
                return None
            return response.choices[0].message.content

        # Anthropic takes the system prompt separately
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        turns = [m for m in messages if m["role"] != "system"]
        response = await self.client.messages.create(
            model=model,
            max_tokens=settings.ai_max_tokens,
            temperature=settings.ai_temperature,
            system=system or settings.ai_system_prompt,
            messages=turns,
        )
        texts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        return "".join(texts)

    # =============================================
    # Conversation handling
    # =============================================
    @staticmethod
    def build_conversation(
        prompt: Optional[str],
        history: Optional[List[Dict[str, str]]],
    ) -> Tuple[List[Dict[str, str]], str]:
        """
        Normalise a request into (messages, text to store as the user's message).

        A non-empty `history` wins over `prompt`; a bare prompt gets the
        default system prompt in front of it.

        Raises:
            ValueError: neither a usable history nor a prompt was supplied
        """
        if history:
            user_turns = [m["content"] for m in history if m["role"] == "user"]
            if not user_turns:
                raise ValueError("messages must include at least one user message")
            return history, user_turns[-1]

        if prompt and prompt.strip():
            return [
                {"role": "system", "content": settings.ai_system_prompt},
                {"role": "user", "content": prompt.strip()},
            ], prompt.strip()

        raise ValueError("messages array is required (or provide 'prompt')")

    async def chat(
        self,
        db: AsyncSession,
        user: User,
        prompt: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        model: Optional[str] = None,
    ) -> Tuple[str, Message, Message]:
        """
        Ask the assistant and store both sides of the exchange.

        Both messages are stored already seen and are not relayed over the
        socket; the caller gets them in the HTTP response.

        Returns:
            Tuple of (reply_text, user_message, ai_message)
        """
        messages, user_text = self.build_conversation(prompt, history)
        assistant_id = settings.ai_assistant_id

        user_message = await MessageService.create_message(
            db, sender_id=user.id, receiver_id=assistant_id, text=user_text, seen=True
        )

        reply = await self.complete(messages, model)

        ai_message = await MessageService.create_message(
            db, sender_id=assistant_id, receiver_id=user.id, text=reply, seen=True
        )
        return reply, user_message, ai_message

    @staticmethod
    async def ensure_assistant_user(db: AsyncSession) -> User:
        """Create the assistant's user row if it does not exist yet."""
        assistant = await db.get(User, settings.ai_assistant_id)
        if assistant is not None:
            return assistant

        assistant = User(
            id=settings.ai_assistant_id,
            email=f"{settings.ai_assistant_id}@assistant.chatspace.local".lower(),
            # Random password nobody knows: the assistant never logs in
            hashed_password=AuthService.hash_password(secrets.token_urlsafe(32)),
            full_name=settings.ai_assistant_name,
            bio="Always online.",
            uploads_enabled=False,
        )
        db.add(assistant)
        await db.flush()
        logger.info(f"Created assistant user {assistant.id}")
        return assistant


# Singleton instance
_ai_service: Optional[AIService] = None


def get_ai_service() -> AIService:
    """Get or create the AI service singleton."""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service
