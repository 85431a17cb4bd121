# querypilot/llm_wrapper.py
"""
Centralized LLM wrapper. Supports OpenAI and Anthropic backends.
Returns a standardized dict:
{
  "text": "<assistant text>",
  "model": "<model used>",
  "response_id": "<model response id if available>",
  "raw": <raw response object>
}

Usage:
  llm = LLMClient.from_settings(settings)
  resp = llm.chat(messages=[{"role": "system", ...}, {"role": "user", ...}])
  text = resp["text"]; model = resp["model"]; rid = resp["response_id"]
"""

from typing import Dict, Any, Optional, List

from querypilot.settings import Settings

PROVIDERS = ("openai", "anthropic")


# ---------------------------------------------------------------------------
# Anthropic backend
# ---------------------------------------------------------------------------
def _real_anthropic_chat(client, messages: List[Dict[str, str]], model: str,
                         max_tokens: int = 2048, temperature: float = 0.0) -> Dict[str, Any]:
    # Anthropic uses a separate system param, not a system message in messages list
    system_text = ""
    chat_messages = []
    for m in messages:
        if m["role"] == "system":
            system_text += m["content"] + "\n"
        else:
            chat_messages.append({"role": m["role"], "content": m["content"]})

    kwargs = {
        "model": model,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "messages": chat_messages,
    }
    if system_text.strip():
        kwargs["system"] = system_text.strip()

    resp = client.messages.create(**kwargs)

    text = ""
    for block in resp.content:
        if hasattr(block, "text"):
            text += block.text

    rid = getattr(resp, "id", None)
    return {"text": text, "model": model, "response_id": rid, "raw": resp}


# ---------------------------------------------------------------------------
# OpenAI backend
# ---------------------------------------------------------------------------
def _real_openai_chat_completion(client, messages: List[Dict[str, str]], model: str,
                                 max_tokens: int = 2048, temperature: float = 0.0) -> Dict[str, Any]:
    resp = client.chat.completions.create(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature
    )
    choices = getattr(resp, "choices", [])
    text = (choices[0].message.content or "") if choices else ""
    rid = getattr(resp, "id", None)
    return {"text": text, "model": model, "response_id": rid, "raw": resp}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
class LLMClient:
    """
    Configuration-bound chat client. The SDK client is built on first use so the
    application can start without credentials; pass `client` to inject one.
    """

    def __init__(self, provider: str, api_key: str, model: str,
                 timeout: int = 30, max_tokens: int = 2048, client: Any = None):
        if provider not in PROVIDERS:
            raise ValueError(f"Unsupported LLM provider: {provider}")
        self.provider = provider
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        return cls(
            provider=settings.llm_provider,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            timeout=settings.llm_timeout,
            max_tokens=settings.llm_max_tokens,
        )

    def _sdk_client(self):
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise RuntimeError(f"No API key configured for LLM provider '{self.provider}'")
        if self.provider == "anthropic":
            from anthropic import Anthropic
            self._client = Anthropic(api_key=self.api_key, timeout=self.timeout)
        else:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def chat(self, messages: List[Dict[str, str]], max_tokens: Optional[int] = None,
             temperature: float = 0.0) -> Dict[str, Any]:
        """
        messages: list of {role, content}
        Returns: dict with keys 'text','model','response_id','raw'
        Raises RuntimeError when the provider call fails.
        """
        max_tokens = max_tokens or self.max_tokens
        client = self._sdk_client()
        try:
            if self.provider == "anthropic":
                return _real_anthropic_chat(client, messages, model=self.model,
                                            max_tokens=max_tokens,
                                            temperature=temperature)
            return _real_openai_chat_completion(client, messages, model=self.model,
                                                max_tokens=max_tokens,
                                                temperature=temperature)
        except Exception as e:
            raise RuntimeError(f"LLM call failed ({self.provider}): {e}") from e

    def close(self):
        """Release the SDK client's connection pool if this wrapper built it."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None
