"""
LLM Manager for RxTutor.
Handles text and vision completions against Gemini (default) or a local Ollama.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import requests

from config import Config

logger = logging.getLogger(__name__)

# Content-safety thresholds are fixed to permissive: clinical vignettes
# routinely trip the default filters.
SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
]

ImageInput = Union[bytes, str]


class MissingCredentialsError(Exception):
    """Raised when an LLM call is attempted without a configured API key."""
    pass


@dataclass
class LLMResponse:
    """Response from LLM."""
    text: str
    model: str
    success: bool
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


def _to_b64(image: ImageInput) -> str:
    if isinstance(image, bytes):
        return base64.b64encode(image).decode("utf-8")
    return image


class LLMManager:
    """Manages LLM interactions for RxTutor."""

    def __init__(self, provider: Optional[str] = None, api_key: Optional[str] = None,
                 model: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[int] = None):
        """Initialize LLM manager.

        Args:
            provider: "gemini" or "ollama" (defaults to Config.LLM_PROVIDER)
            api_key: Gemini API key (defaults to Config.GEMINI_API_KEY)
            model: Model name override
            base_url: Endpoint base URL override
            timeout: Per-request timeout in seconds
        """
        self.provider = provider or Config.LLM_PROVIDER
        self.api_key = api_key if api_key is not None else Config.GEMINI_API_KEY
        self.timeout = timeout or Config.LLM_TIMEOUT

        if self.provider == "ollama":
            self.model = model or Config.OLLAMA_MODEL
            self.base_url = base_url or Config.OLLAMA_BASE_URL
        else:
            self.model = model or Config.GEMINI_MODEL
            self.base_url = base_url or Config.GEMINI_BASE_URL

    @property
    def has_credentials(self) -> bool:
        """Whether calls can be made without raising MissingCredentialsError."""
        if self.provider == "ollama":
            return True
        return bool(self.api_key)

    def require_credentials(self):
        """Fail fast before any network traffic when no key is configured."""
        if not self.has_credentials:
            raise MissingCredentialsError(
                "No API key configured (set RXT_GEMINI_API_KEY or GEMINI_API_KEY)"
            )

    def generate(self, prompt: str, images: Optional[Sequence[ImageInput]] = None,
                 model: Optional[str] = None,
                 system: Optional[str] = None,
                 temperature: float = 0.7,
                 max_tokens: Optional[int] = None) -> LLMResponse:
        """Generate text from LLM.

        Args:
            prompt: User prompt
            images: PNG images (raw bytes or base64 text) placed before the prompt
            model: Model override
            system: System instruction
            temperature: Sampling temperature
            max_tokens: Maximum output tokens

        Returns:
            LLMResponse with generated text

        Raises:
            MissingCredentialsError: No API key for a key-based provider
        """
        self.require_credentials()
        model = model or self.model
        logger.debug(f"{self.provider} request: model={model}, images={len(images or [])}")

        if self.provider == "gemini":
            return self._gemini_generate(
                prompt, list(images or []), model, system, temperature, max_tokens
            )
        elif self.provider == "ollama":
            return self._ollama_generate(
                prompt, list(images or []), model, system, temperature, max_tokens
            )
        return LLMResponse(
            text="",
            model=model,
            success=False,
            error=f"Provider {self.provider} not implemented"
        )

    def _gemini_generate(self, prompt: str, images: List[ImageInput], model: str,
                         system: Optional[str], temperature: float,
                         max_tokens: Optional[int]) -> LLMResponse:
        """Generate using the Gemini generateContent REST endpoint."""
        parts: List[Dict[str, Any]] = [
            {"inline_data": {"mime_type": "image/png", "data": _to_b64(img)}}
            for img in images
        ]
        parts.append({"text": prompt})

        generation_config: Dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            generation_config["maxOutputTokens"] = max_tokens

        payload: Dict[str, Any] = {
            "contents": [{"parts": parts}],
            "generationConfig": generation_config,
            "safetySettings": SAFETY_SETTINGS,
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        url = f"{self.base_url}/models/{model}:generateContent"

        try:
            response = requests.post(
                url,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout:
            return LLMResponse(text="", model=model, success=False,
                               error="Request timed out")
        except requests.exceptions.RequestException as e:
            return LLMResponse(text="", model=model, success=False,
                               error=f"Gemini error: {e}")
        except ValueError as e:
            return LLMResponse(text="", model=model, success=False,
                               error=f"Gemini returned non-JSON body: {e}")

        try:
            text = result["candidates"][0]["content"]["parts"][0].get("text", "")
        except (KeyError, IndexError, TypeError):
            text = ""

        return LLMResponse(
            text=text.strip(),
            model=model,
            success=True,
            metadata={
                "finish_reason": (result.get("candidates") or [{}])[0].get("finishReason"),
                "usage": result.get("usageMetadata"),
            }
        )

    def _ollama_generate(self, prompt: str, images: List[ImageInput], model: str,
                         system: Optional[str], temperature: float,
                         max_tokens: Optional[int]) -> LLMResponse:
        """Generate using a local Ollama server."""
        payload: Dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if system:
            payload["system"] = system
        if max_tokens:
            payload["options"]["num_predict"] = max_tokens
        if images:
            payload["images"] = [_to_b64(img) for img in images]

        try:
            response = requests.post(f"{self.base_url}/api/generate", json=payload,
                                     timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.ConnectionError:
            return LLMResponse(text="", model=model, success=False,
                               error="Cannot connect to Ollama. Is it running? (ollama serve)")
        except requests.exceptions.RequestException as e:
            return LLMResponse(text="", model=model, success=False,
                               error=f"Ollama error: {e}")
        except ValueError as e:
            return LLMResponse(text="", model=model, success=False,
                               error=f"Ollama returned non-JSON body: {e}")

        return LLMResponse(
            text=result.get("response", ""),
            model=model,
            success=True,
            metadata={"eval_count": result.get("eval_count")},
        )
