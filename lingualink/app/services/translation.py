############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# translation.py: Translation client with multi-account failover
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Translation provider client.

Requests are spread round-robin across several provider accounts. A
failure on the first attempt fails over to the next account at once;
later failures retry the same account after a fixed pause. Exhaustion
is reported as a failed ``TranslationResult``, never as an exception.
"""

import asyncio
import os
import re
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence

import httpx

from lingualink.app.core import metrics
from lingualink.app.core.background import spawn_detached
from lingualink.app.core.exceptions import (
    ConfigurationError,
    PreconditionError,
    TranslationProviderError,
)
from lingualink.app.logging_config import get_logger
from lingualink.app.settings import Settings, get_settings

logger = get_logger(__name__)

PROVIDER_NAME = "cloudflare"

SUPPORTED_LANGUAGES: Dict[str, str] = {
    "ar": "Arabic",
    "bg": "Bulgarian",
    "cs": "Czech",
    "da": "Danish",
    "de": "German",
    "el": "Greek",
    "en": "English",
    "en-gb": "English (British)",
    "en-us": "English (American)",
    "es": "Spanish",
    "es-419": "Spanish (Latin American)",
    "et": "Estonian",
    "fi": "Finnish",
    "fr": "French",
    "he": "Hebrew",
    "hi": "Hindi",
    "hu": "Hungarian",
    "id": "Indonesian",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "lt": "Lithuanian",
    "lv": "Latvian",
    "nb": "Norwegian (Bokmål)",
    "nl": "Dutch",
    "pl": "Polish",
    "pt": "Portuguese",
    "pt-br": "Portuguese (Brazilian)",
    "pt-pt": "Portuguese (European)",
    "ro": "Romanian",
    "ru": "Russian",
    "sk": "Slovak",
    "sl": "Slovenian",
    "sv": "Swedish",
    "th": "Thai",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
    "zh": "Chinese",
    "zh-hans": "Chinese (Simplified)",
    "zh-hant": "Chinese (Traditional)",
}

# Checked in order; first match wins. Kana is tested before Han so that
# Japanese text containing kanji is not reported as Chinese.
_SCRIPT_PATTERNS = [
    (re.compile(r"[\u3040-\u309f\u30a0-\u30ff]"), "ja"),
    (re.compile(r"[\u4e00-\u9fff]"), "zh"),
    (re.compile(r"[\uac00-\ud7af]"), "ko"),
    (re.compile(r"[\u0600-\u06ff]"), "ar"),
    (re.compile(r"[\u0590-\u05ff]"), "he"),
    (re.compile(r"[\u0400-\u04ff]"), "ru"),
    (re.compile(r"[\u0370-\u03ff]"), "el"),
    (re.compile(r"[\u0e00-\u0e7f]"), "th"),
    (re.compile(r"[\u0900-\u097f]"), "hi"),
]


def detect_language(text: str) -> str:
    """Guess a language code from the script of ``text``; Latin defaults to en."""
    for pattern, code in _SCRIPT_PATTERNS:
        if pattern.search(text or ""):
            return code if code in SUPPORTED_LANGUAGES else "en"
    return "en"


def normalize_language(code: Optional[str]) -> str:
    return (code or "").strip().lower().replace("_", "-")


# ----------------------------------------------------------------------
# Credentials
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class CredentialSet:
    """One provider account."""

    account_id: str
    api_key: str
    label: str

    def __repr__(self) -> str:
        return f"CredentialSet(label={self.label!r}, account_id={self.account_id!r})"


class CredentialPool:
    """Round-robin cursor over credential sets."""

    def __init__(self, credentials: Sequence[CredentialSet]):
        if not credentials:
            raise ConfigurationError("At least one translation credential set is required")
        self._credentials: List[CredentialSet] = list(credentials)
        self.current_index = 0

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self._credentials]

    def acquire(self) -> CredentialSet:
        """Return the next credential set; the cursor advances on every call."""
        credential = self._credentials[self.current_index]
        self.current_index = (self.current_index + 1) % len(self._credentials)
        return credential


def load_credentials(
    settings: Optional[Settings] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> List[CredentialSet]:
    """
    Credential sets from settings, else from CLOUDFLARE_* environment pairs.

    Raises:
        ConfigurationError: nothing configured
    """
    settings = settings or get_settings()
    found: List[CredentialSet] = [
        CredentialSet(
            account_id=c.account_id,
            api_key=c.api_key,
            label=c.label or f"account-{index}",
        )
        for index, c in enumerate(settings.translation_credentials, start=1)
    ]

    if not found:
        env = environ if environ is not None else os.environ
        account = env.get("CLOUDFLARE_ACCOUNT_ID")
        token = env.get("CLOUDFLARE_API_TOKEN")
        if account and token:
            found.append(CredentialSet(account, token, "primary"))
        index = 1
        while True:
            account = env.get(f"CLOUDFLARE_ACCOUNT_ID_{index}")
            token = env.get(f"CLOUDFLARE_API_TOKEN_{index}")
            if not (account and token):
                break
            found.append(CredentialSet(account, token, f"account-{index}"))
            index += 1

    if not found:
        raise ConfigurationError(
            "No translation credentials configured. Set TRANSLATION_CREDENTIALS "
            "or CLOUDFLARE_ACCOUNT_ID/CLOUDFLARE_API_TOKEN."
        )
    logger.info("loaded_translation_credentials", count=len(found))
    return found


# ----------------------------------------------------------------------
# Results and history
# ----------------------------------------------------------------------


@dataclass
class TranslationResult:
    """Outcome of ``translate()``; either a full success or a structured failure."""

    success: bool
    translated_text: Optional[str] = None
    source_language: Optional[str] = None
    target_language: Optional[str] = None
    provider: str = PROVIDER_NAME
    error: Optional[str] = None
    error_type: Optional[str] = None  # precondition, exhausted
    attempts: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.success:
            for key in ("error", "error_type", "attempts"):
                data.pop(key)
        return data


@dataclass
class HistoryEntry:
    source_text: str
    translated_text: str
    source_language: str
    target_language: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


class TranslationHistory:
    """Bounded in-memory log of recent translations, newest last."""

    def __init__(self, max_entries: int = 200):
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_entries)

    async def record(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def recent(self, limit: int = 50) -> List[HistoryEntry]:
        """Most recent entries first."""
        return list(reversed(self._entries))[:limit]

    def __len__(self) -> int:
        return len(self._entries)


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------


class TranslationClient:
    """Cloudflare Workers AI translation with account-level failover."""

    def __init__(
        self,
        credentials: Sequence[CredentialSet],
        api_base: str = "https://api.cloudflare.com/client/v4",
        model: str = "@cf/meta/m2m100-1.2b",
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        max_text_length: int = 8000,
        history: Optional[TranslationHistory] = None,
    ):
        self.pool = CredentialPool(credentials)
        self.api_base = api_base.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.max_text_length = max_text_length
        self.history = history if history is not None else TranslationHistory()
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "TranslationClient":
        settings = settings or get_settings()
        return cls(
            credentials=load_credentials(settings, environ),
            api_base=settings.translation_api_base,
            model=settings.translation_model,
            timeout=settings.translation_timeout,
            max_retries=settings.translation_max_retries,
            retry_delay=settings.translation_retry_delay,
            max_text_length=settings.translation_max_text_length,
            history=TranslationHistory(settings.translation_history_size),
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def validate(self, text: Any, target_lang: Any) -> str:
        """
        Check caller input before any network call.

        Returns the normalized target language.

        Raises:
            PreconditionError: empty or oversized text, unsupported language
        """
        if not isinstance(text, str) or not text.strip():
            raise PreconditionError("No text provided for translation")
        if len(text) > self.max_text_length:
            raise PreconditionError(
                f"Text too long: maximum {self.max_text_length} characters allowed"
            )
        target = normalize_language(target_lang)
        if target not in SUPPORTED_LANGUAGES:
            raise PreconditionError(f"Unsupported target language: {target_lang}")
        return target

    async def translate(
        self,
        text: str,
        target_lang: str,
        source_lang: str = "auto",
    ) -> TranslationResult:
        """Translate ``text``; failures come back as ``success=False`` results."""
        try:
            target = self.validate(text, target_lang)
        except PreconditionError as e:
            metrics.TRANSLATIONS.labels(outcome="rejected").inc()
            logger.info("translation_rejected", reason=str(e))
            return TranslationResult(
                success=False,
                target_language=normalize_language(target_lang) or None,
                error=str(e),
                error_type="precondition",
                attempts=0,
            )

        source = normalize_language(source_lang)
        if not source or source == "auto":
            source = detect_language(text)

        credential = self.pool.acquire()
        attempts = 0
        credential_attempts = 0
        last_error: Optional[Exception] = None

        while True:
            attempts += 1
            credential_attempts += 1
            try:
                translated = await self._call_provider(credential, text, source, target)
            except TranslationProviderError as e:
                last_error = e
                logger.warning(
                    "translation_attempt_failed",
                    account=credential.label,
                    attempt=attempts,
                    error=str(e),
                )
                if attempts == 1 and len(self.pool) > 1:
                    previous = credential.label
                    credential = self.pool.acquire()
                    credential_attempts = 0
                    logger.info(
                        "translation_failover",
                        from_account=previous,
                        to_account=credential.label,
                    )
                    continue
                if credential_attempts >= self.max_retries:
                    break
                await asyncio.sleep(self.retry_delay)
                continue

            metrics.TRANSLATIONS.labels(outcome="success").inc()
            logger.debug("translation_succeeded", account=credential.label, attempt=attempts)
            spawn_detached(
                self.history.record(
                    HistoryEntry(
                        source_text=text,
                        translated_text=translated,
                        source_language=source,
                        target_language=target,
                    )
                ),
                name="translation_history",
            )
            return TranslationResult(
                success=True,
                translated_text=translated,
                source_language=source,
                target_language=target,
            )

        metrics.TRANSLATIONS.labels(outcome="failure").inc()
        logger.error("translation_exhausted", attempts=attempts, error=str(last_error))
        return TranslationResult(
            success=False,
            source_language=source,
            target_language=target,
            error=str(last_error),
            error_type="exhausted",
            attempts=attempts,
        )

    async def _call_provider(
        self,
        credential: CredentialSet,
        text: str,
        source: str,
        target: str,
    ) -> str:
        url = f"{self.api_base}/accounts/{credential.account_id}/ai/run/{self.model}"
        client = await self._get_client()
        try:
            response = await client.post(
                url,
                json={"text": text, "source_lang": source, "target_lang": target},
                headers={"Authorization": f"Bearer {credential.api_key}"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TranslationProviderError(
                f"Provider request failed: {str(e) or type(e).__name__}"
            ) from e

        if not 200 <= response.status_code < 300:
            raise TranslationProviderError(
                f"Provider returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TranslationProviderError("Provider returned a malformed body") from e

        if isinstance(data, dict) and data.get("success") is False:
            raise TranslationProviderError(
                f"Provider reported failure: {data.get('errors') or 'unknown error'}"
            )
        result = data.get("result") if isinstance(data, dict) else None
        translated = result.get("translated_text") if isinstance(result, dict) else None
        if not isinstance(translated, str) or not translated:
            raise TranslationProviderError("Provider response missing translated_text")
        return translated
