"""
Runtime Configuration for Zenbot.

Provides a singleton RuntimeConfig class that allows dynamic adjustment of
model, retrieval and agent parameters at runtime, without requiring a service
restart. The knowledge-base settings are also exposed as a KnowledgeConfig
snapshot, which is what the retrieval step reads at the start of every turn.

Usage:
    from config import runtime_config
    kb = runtime_config.knowledge_config()
    runtime_config.update(kb_similarity_threshold=0.6, temperature=0.4)
"""

import json
import math
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List
from threading import Lock

from errors import ValidationError

logger = logging.getLogger(__name__)


# Defaults for the knowledge-base settings (also used to back-fill
# partially persisted configs)
KB_DEFAULTS = {
    "max_documents": 3,
    "similarity_threshold": 0.7,
    "max_context_length": 2000,
}

# KnowledgeConfig field -> RuntimeConfig field
_KB_FIELD_MAP = {
    "max_documents": "kb_max_documents",
    "similarity_threshold": "kb_similarity_threshold",
    "max_context_length": "kb_max_context_length",
}


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


@dataclass(frozen=True)
class KnowledgeConfig:
    """Retrieval settings consumed by the agent on every knowledge turn."""

    max_documents: int = KB_DEFAULTS["max_documents"]
    similarity_threshold: float = KB_DEFAULTS["similarity_threshold"]
    max_context_length: int = KB_DEFAULTS["max_context_length"]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "KnowledgeConfig":
        """Build from a (possibly partial) dict; missing fields get defaults."""
        data = data or {}
        merged = {}
        for key, default in KB_DEFAULTS.items():
            value = data.get(key)
            merged[key] = default if value is None else value
        return cls(
            max_documents=int(merged["max_documents"]),
            similarity_threshold=float(merged["similarity_threshold"]),
            max_context_length=int(merged["max_context_length"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_documents": self.max_documents,
            "similarity_threshold": self.similarity_threshold,
            "max_context_length": self.max_context_length,
        }


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    # Generation service (OpenAI-compatible server, e.g. llama-server)
    llm_base_url: str = field(
        default_factory=lambda: _first_env("LLM_BASE_URL", "LLM_URL", default="http://localhost:8081")
    )
    model_chat: str = field(
        default_factory=lambda: _first_env("LLM_CHAT_MODEL", default="Qwen3-4B-Instruct-Q4_K_M.gguf")
    )
    temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.5")))
    top_p: float = field(default_factory=lambda: float(os.environ.get("LLM_TOP_P", "0.9")))
    max_output_tokens: int = field(
        default_factory=lambda: int(os.environ.get("LLM_MAX_OUTPUT_TOKENS", "4096"))
    )
    # Short completions (intent label, refined query)
    helper_max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("LLM_HELPER_MAX_TOKENS", "64"))
    )
    # Transport-level timeout for generation calls, seconds
    llm_timeout: float = field(default_factory=lambda: float(os.environ.get("LLM_TIMEOUT", "300")))

    # Embedding service
    embedding_model: str = field(
        default_factory=lambda: os.environ.get(
            "EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
        )
    )
    embedding_device: str = field(default_factory=lambda: os.environ.get("EMBEDDING_DEVICE", "cpu"))

    # Vector store (QDRANT_URL wins, then QDRANT_PATH, else in-memory)
    qdrant_url: str = field(default_factory=lambda: os.environ.get("QDRANT_URL", ""))
    qdrant_path: str = field(default_factory=lambda: os.environ.get("QDRANT_PATH", ""))
    qdrant_collection: str = field(
        default_factory=lambda: os.environ.get("QDRANT_COLLECTION", "knowledge_base")
    )

    # Message store
    chat_db_path: str = field(
        default_factory=lambda: os.environ.get("CHAT_DB_PATH", "data/chat/chat.db")
    )
    history_limit_api: int = field(default_factory=lambda: int(os.environ.get("HISTORY_LIMIT_API", "50")))
    history_limit_model: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_LIMIT_MODEL", "24"))
    )

    # Agent persona and domain
    assistant_name: str = field(default_factory=lambda: os.environ.get("ASSISTANT_NAME", "Zenbot"))
    domain_topics: str = field(
        default_factory=lambda: os.environ.get("DOMAIN_TOPICS", "Hasinthaka and Zenlise")
    )
    domain_keywords: str = field(
        default_factory=lambda: os.environ.get("DOMAIN_KEYWORDS", "hasinthaka,zenlise,zenbot")
    )
    # Recent turns given to the intent router and query refiner
    history_window: int = field(default_factory=lambda: int(os.environ.get("HISTORY_WINDOW", "3")))

    # Knowledge base retrieval
    kb_max_documents: int = field(
        default_factory=lambda: int(os.environ.get("KB_MAX_DOCUMENTS", str(KB_DEFAULTS["max_documents"])))
    )
    kb_similarity_threshold: float = field(
        default_factory=lambda: float(
            os.environ.get("KB_SIMILARITY_THRESHOLD", str(KB_DEFAULTS["similarity_threshold"]))
        )
    )
    kb_max_context_length: int = field(
        default_factory=lambda: int(
            os.environ.get("KB_MAX_CONTEXT_LENGTH", str(KB_DEFAULTS["max_context_length"]))
        )
    )

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False)

    # Validation ranges for numeric config values
    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "temperature": (0.0, 2.0),
        "top_p": (0.0, 1.0),
        "max_output_tokens": (64, 32768),
        "helper_max_tokens": (8, 1024),
        "llm_timeout": (1.0, 3600.0),
        "history_window": (0, 50),
        "history_limit_api": (1, 1000),
        "history_limit_model": (1, 200),
        "kb_max_documents": (1, 20),
        "kb_similarity_threshold": (0.0, 1.0),
        "kb_max_context_length": (100, 10000),
    }, repr=False, compare=False)

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., kb_max_documents=5)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown or invalid keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_"):
                    ignored.append(key)
                    continue

                if hasattr(self, key):
                    if key == "llm_base_url" and isinstance(value, str):
                        cleaned = value.strip()
                        if not cleaned.startswith(("http://", "https://")):
                            ignored.append(key)
                            logger.warning(f"Config rejected invalid URL: {key}={value!r}")
                            continue
                        value = cleaned.rstrip("/")

                    # Validate model names (alphanumeric, colons, dots, dashes, slashes only)
                    if key in ("model_chat", "embedding_model") and isinstance(value, str) and value:
                        import re as _re
                        if not _re.match(r'^[a-zA-Z0-9._:/-]+$', value) or len(value) > 200:
                            ignored.append(key)
                            logger.warning(f"Config rejected invalid model name: {key}={value!r}")
                            continue

                    # Validate numeric ranges
                    if key in self._VALIDATION_RANGES:
                        lo, hi = self._VALIDATION_RANGES[key]
                        if isinstance(value, bool) or not isinstance(value, (int, float)) or not (lo <= value <= hi):
                            ignored.append(key)
                            logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                            continue
                        # Integer fields only take whole numbers
                        if isinstance(getattr(self, key), int):
                            if int(value) != value:
                                ignored.append(key)
                                logger.warning(f"Config rejected {key}={value} (must be an integer)")
                                continue
                            value = int(value)

                    old_value = getattr(self, key)
                    setattr(self, key, value)
                    updated.append(key)
                    logger.info(f"Config updated: {key} = {value} (was {old_value})")
                else:
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored, "update_count": self._update_count}

    def get_domain_keywords(self) -> List[str]:
        """Get lowercase in-domain keywords that force a KNOWLEDGE intent."""
        return [k.strip().lower() for k in self.domain_keywords.split(",") if k.strip()]

    def knowledge_config(self) -> KnowledgeConfig:
        """Snapshot of the current knowledge-base settings."""
        with self._lock:
            return KnowledgeConfig.from_dict({
                name: getattr(self, attr) for name, attr in _KB_FIELD_MAP.items()
            })

    def update_knowledge_config(self, **partial: Any) -> KnowledgeConfig:
        """
        Validate and apply a partial KnowledgeConfig update.

        Every supplied value is checked before anything is applied, so an
        invalid request leaves the config untouched.

        Raises:
            ValidationError: unknown field, wrong type or value out of range
        """
        pending = {}
        for name, value in partial.items():
            if value is None:
                continue
            if name not in _KB_FIELD_MAP:
                raise ValidationError(
                    f"Unknown knowledge config field: {name}",
                    parameter=name,
                    expected=", ".join(_KB_FIELD_MAP),
                )
            attr = _KB_FIELD_MAP[name]
            lo, hi = self._VALIDATION_RANGES[attr]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(
                    f"{name} must be a number",
                    parameter=name,
                    received=repr(value),
                )
            if not math.isfinite(value):
                raise ValidationError(
                    f"{name} must be a finite number",
                    parameter=name,
                    received=repr(value),
                )
            if attr != "kb_similarity_threshold" and int(value) != value:
                raise ValidationError(
                    f"{name} must be an integer",
                    parameter=name,
                    received=repr(value),
                )
            if not (lo <= value <= hi):
                raise ValidationError(
                    f"{name} must be between {lo} and {hi}",
                    parameter=name,
                    expected=f"{lo}-{hi}",
                    received=repr(value),
                )
            pending[attr] = float(value) if attr == "kb_similarity_threshold" else int(value)

        if pending:
            self.update(**pending)
        return self.knowledge_config()

    def get_llm_params(self) -> Dict[str, Any]:
        """Get LLM parameters for OpenAI API calls."""
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_output_tokens,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if not field_info.name.startswith("_"):
                result[field_info.name] = getattr(self, field_info.name)
        return result

    # Config persistence
    _overrides_path: Path = field(
        default_factory=lambda: Path(os.environ.get(
            "CONFIG_OVERRIDES_PATH", "data/config/config_overrides.json"
        )),
        repr=False, compare=False,
    )

    def save_overrides(self) -> None:
        """Save non-default values to persistent storage."""
        defaults = RuntimeConfig()
        overrides = {}

        # Connection/location fields stay env-only
        skip_fields = {"llm_base_url", "qdrant_url", "qdrant_path", "chat_db_path"}

        current = self.to_dict()
        default_dict = defaults.to_dict()

        for key, value in current.items():
            if key in skip_fields:
                continue
            if value != default_dict.get(key):
                overrides[key] = value

        try:
            self._overrides_path.parent.mkdir(parents=True, exist_ok=True)
            self._overrides_path.write_text(
                json.dumps(overrides, indent=2, default=str),
                encoding="utf-8",
            )
            logger.info(f"Config overrides saved: {len(overrides)} values to {self._overrides_path}")
        except OSError as e:
            logger.error(f"Failed to save config overrides: {e}")

    def load_overrides(self) -> Dict[str, Any]:
        """Load overrides from persistent storage. Env vars take precedence."""
        if not self._overrides_path.exists():
            return {}

        try:
            overrides = json.loads(self._overrides_path.read_text(encoding="utf-8"))
            if not isinstance(overrides, dict):
                return {}

            # Only apply overrides for fields that still have their default value
            # (env vars would have already changed them from default)
            defaults = RuntimeConfig()
            applied = []

            with self._lock:
                for key, value in overrides.items():
                    if key.startswith("_") or not hasattr(self, key):
                        continue
                    current = getattr(self, key)
                    default = getattr(defaults, key)
                    if current == default and value != default:
                        field_type = type(default)
                        try:
                            typed_value = field_type(value)
                        except (ValueError, TypeError):
                            logger.warning(f"Config override type mismatch: {key}={value}")
                            continue
                        if key in self._VALIDATION_RANGES:
                            lo, hi = self._VALIDATION_RANGES[key]
                            if not (lo <= typed_value <= hi):
                                logger.warning(f"Config override out of range: {key}={value}")
                                continue
                        setattr(self, key, typed_value)
                        applied.append(key)

            if applied:
                logger.info(f"Config overrides loaded: {', '.join(applied)}")
            return {"applied": applied, "total": len(overrides)}

        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config overrides: {e}")
            return {}

    def reset_to_defaults(self) -> Dict[str, Any]:
        """Reset all values to environment defaults and clear overrides."""
        defaults = RuntimeConfig()
        changes = {}

        with self._lock:
            for key in self.to_dict().keys():
                old_value = getattr(self, key)
                new_value = getattr(defaults, key)
                if old_value != new_value:
                    setattr(self, key, new_value)
                    changes[key] = {"old": old_value, "new": new_value}
                    logger.info(f"Config reset: {key} = {new_value}")

            self._update_count += 1

        try:
            if self._overrides_path.exists():
                self._overrides_path.write_text("{}", encoding="utf-8")
                logger.info("Config overrides file cleared")
        except OSError as e:
            logger.error(f"Failed to clear overrides file: {e}")

        return {"reset": True, "changes": changes, "update_count": self._update_count}


# Singleton instance
runtime_config = RuntimeConfig()

# Load persisted overrides on startup
runtime_config.load_overrides()
