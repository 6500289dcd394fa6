"""Address translation using a local Ollama model."""

import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class OllamaTranslator:
    """Translate Japanese listing addresses to English through Ollama."""

    DEFAULT_MODEL = "qwen3:8b"
    DEFAULT_BASE_URL = "http://localhost:11434"
    DEFAULT_TIMEOUT = 60.0
    MAX_RETRIES = 2

    PROMPT = (
        "Translate this Japanese property address into English using the standard "
        "romanized order (block/number, district, city, prefecture). "
        'Respond with JSON only, in the form {{"english_address": "..."}}.\n\n'
        "Address: {address}"
    )

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the translator.

        Args:
            model: Ollama model name to use
            base_url: Ollama API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._available: Optional[bool] = None

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    async def check_availability(self) -> bool:
        """
        Check if Ollama is available and the model is loaded.

        Returns:
            True if Ollama is available, False otherwise
        """
        logger.info(f"Checking Ollama availability at {self.base_url}...")
        try:
            async with self._client(httpx.Timeout(5.0, connect=5.0)) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                if response.status_code != 200:
                    logger.warning("Ollama not responding")
                    self._available = False
                    return False

                models = [m.get("name", "") for m in response.json().get("models", [])]
                model_base = self.model.split(":")[0]
                if not any(model_base in m for m in models):
                    logger.warning(f"Model {self.model} not found. Available: {models}")
                    self._available = False
                    return False

                logger.info(f"Ollama is available with model {self.model}")
                self._available = True
                return True

        except httpx.ConnectError:
            logger.warning("Cannot connect to Ollama. Is it running?")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Error checking Ollama availability: {e}")
        self._available = False
        return False

    def _parse_response(self, text: str) -> Optional[str]:
        if not text:
            return None
        candidates = [text]
        block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
        if block:
            candidates.append(block.group(1))
        obj = re.search(r"\{[\s\S]*\}", text)
        if obj:
            candidates.append(obj.group(0))

        for candidate in candidates:
            try:
                data: Dict[str, Any] = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                value = str(data.get("english_address") or "").strip()
                if value:
                    return value
        return None

    async def translate_address(self, address: str) -> Optional[str]:
        """
        Translate one address.

        Args:
            address: Raw Japanese address

        Returns:
            English address, or None when Ollama is unavailable or fails
        """
        if not address:
            return None
        if self._available is None:
            await self.check_availability()
        if not self._available:
            logger.debug("Ollama not available, skipping address translation")
            return None

        for attempt in range(self.MAX_RETRIES):
            try:
                async with self._client(
                    httpx.Timeout(self.timeout, connect=10.0, pool=5.0)
                ) as client:
                    response = await client.post(
                        f"{self.base_url}/api/generate",
                        json={
                            "model": self.model,
                            "prompt": self.PROMPT.format(address=address),
                            "stream": False,
                            "format": "json",
                            "options": {"temperature": 0.0, "num_predict": 200},
                        },
                    )
                if response.status_code == 200:
                    translated = self._parse_response(response.json().get("response", ""))
                    if translated:
                        return translated
                    logger.warning(f"Unparseable translation on attempt {attempt + 1}")
                else:
                    logger.warning(
                        f"Ollama request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): "
                        f"status={response.status_code}"
                    )
            except httpx.TimeoutException as e:
                logger.warning(
                    f"Ollama timeout on attempt {attempt + 1}/{self.MAX_RETRIES} "
                    f"(timeout: {self.timeout}s): {e}"
                )
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Ollama error on attempt {attempt + 1}/{self.MAX_RETRIES}: {e}")

        return None
