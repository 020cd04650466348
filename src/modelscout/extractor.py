"""
Metadata extraction for registry search results.

Turns the registry's untrusted per-model JSON into typed candidates: the
quantization variants found in the file manifest, the parameter-size token and
conversational support derived from tags, and (for the image-generation
catalog) the model type and downloadable weight files.

Classification is table-driven: the ordered rule tuples below are the single
source of precedence.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Iterable, List, Optional, Sequence, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from .quant_utils import extract_quant_label

logger = logging.getLogger(__name__)

GGUF_EXTENSIONS: tuple[str, ...] = (".gguf",)
DIFFUSION_EXTENSIONS: tuple[str, ...] = (".safetensors", ".ckpt", ".pt", ".pth", ".bin")

MODEL_TYPES: tuple[str, ...] = ("checkpoint", "lora", "vae", "controlnet", "upscaler")
DEFAULT_MODEL_TYPE = "checkpoint"

# (keyword, model type): the first keyword found in any tag or the pipeline
# classification decides, regardless of how many others also match.
MODEL_TYPE_RULES: tuple[tuple[str, str], ...] = (
    ("lora", "lora"),
    ("vae", "vae"),
    ("controlnet", "controlnet"),
    ("upscal", "upscaler"),
)

# (match kind, marker) for conversational support.
CHAT_MARKER_RULES: tuple[tuple[str, str], ...] = (
    ("equals", "chat_template"),
    ("contains", "chat"),
    ("contains", "instruct"),
    ("contains", "conversational"),
)

_PARAM_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?[BMK])$", re.IGNORECASE)


class RawSibling(BaseModel):
    """One entry of a registry file manifest."""

    rfilename: str = Field(validation_alias=AliasChoices("rfilename", "filename"))
    size: Optional[int] = None


class RawRecord(BaseModel):
    """Registry's native model record; every optional field has a default."""

    id: str
    author: Optional[str] = None
    last_modified: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("lastModified", "last_modified")
    )
    tags: List[str] = Field(default_factory=list)
    pipeline_tag: Optional[str] = None
    downloads: int = 0
    likes: int = 0
    siblings: List[RawSibling] = Field(default_factory=list)
    private: bool = False
    gated: Union[bool, str] = False

    @field_validator("tags", "siblings", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("downloads", "likes", mode="before")
    @classmethod
    def _none_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("private", mode="before")
    @classmethod
    def _none_as_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("gated", mode="before")
    @classmethod
    def _gated_default(cls, value: Any) -> Any:
        return False if value is None else value

    @property
    def is_gated(self) -> bool:
        # Anything but an explicit boolean false counts as gated.
        return self.gated is not False


@dataclass(frozen=True)
class Quantization:
    label: str
    filename: str
    size_bytes: Optional[int] = None


@dataclass
class Candidate:
    """A registry record after extraction, ready for scoring."""

    id: str
    author: str
    last_modified: datetime
    tags: List[str] = field(default_factory=list)
    pipeline_tag: Optional[str] = None
    downloads: int = 0
    likes: int = 0
    quantizations: List[Quantization] = field(default_factory=list)
    is_private: bool = False
    is_gated: bool = False
    has_chat_template: bool = False
    parameter_size: Optional[str] = None

    @property
    def quant_labels(self) -> List[str]:
        return [q.label for q in self.quantizations]


@dataclass(frozen=True)
class DiffusionFile:
    filename: str
    size_bytes: Optional[int] = None


@dataclass
class DiffusionCandidate:
    """Image-generation catalog entry with its downloadable weight files."""

    id: str
    author: str
    last_modified: datetime
    model_type: str
    tags: List[str] = field(default_factory=list)
    pipeline_tag: Optional[str] = None
    downloads: int = 0
    likes: int = 0
    files: List[DiffusionFile] = field(default_factory=list)
    is_private: bool = False
    is_gated: bool = False


def _has_extension(filename: str, extensions: Sequence[str]) -> bool:
    return PurePosixPath(filename.lower()).suffix in extensions


def extract_quantizations(
    siblings: Iterable[RawSibling], extensions: Sequence[str] = GGUF_EXTENSIONS
) -> List[Quantization]:
    """Collect one :class:`Quantization` per distinct label; first file wins."""
    seen: set[str] = set()
    results: List[Quantization] = []
    for sibling in siblings:
        if extensions and not _has_extension(sibling.rfilename, extensions):
            continue
        label = extract_quant_label(sibling.rfilename)
        if label is None or label in seen:
            continue
        seen.add(label)
        results.append(Quantization(label, sibling.rfilename, sibling.size))
    return results


def extract_parameter_size(tags: Iterable[str]) -> Optional[str]:
    for tag in tags:
        match = _PARAM_SIZE_PATTERN.match(tag.strip())
        if match:
            return match.group(1).upper()
    return None


def supports_chat(tags: Iterable[str]) -> bool:
    lowered = [t.lower() for t in tags]
    for kind, marker in CHAT_MARKER_RULES:
        if kind == "equals" and marker in lowered:
            return True
        if kind == "contains" and any(marker in t for t in lowered):
            return True
    return False


def classify_model_type(tags: Iterable[str], pipeline_tag: Optional[str]) -> str:
    haystack = [t.lower() for t in tags] + [(pipeline_tag or "").lower()]
    for keyword, model_type in MODEL_TYPE_RULES:
        if any(keyword in item for item in haystack):
            return model_type
    return DEFAULT_MODEL_TYPE


def filter_weight_files(
    siblings: Iterable[RawSibling], extensions: Sequence[str] = DIFFUSION_EXTENSIONS
) -> List[DiffusionFile]:
    return [
        DiffusionFile(s.rfilename, s.size)
        for s in siblings
        if _has_extension(s.rfilename, extensions)
    ]


def parse_raw_record(payload: Any) -> Optional[RawRecord]:
    """Validate one registry record; log and return ``None`` when malformed."""
    try:
        return RawRecord.model_validate(payload)
    except ValidationError as exc:
        record_id = payload.get("id") if isinstance(payload, dict) else None
        logger.warning(
            "Skipping malformed registry record %s: %s",
            record_id or "<unknown>",
            exc.errors(include_url=False),
        )
        return None


def _author_of(raw: RawRecord) -> str:
    if raw.author:
        return raw.author
    return raw.id.split("/")[0] or "unknown"


def _modified_at(raw: RawRecord, now: Optional[datetime]) -> datetime:
    value = raw.last_modified or now or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def to_candidate(raw: RawRecord, now: Optional[datetime] = None) -> Candidate:
    return Candidate(
        id=raw.id,
        author=_author_of(raw),
        last_modified=_modified_at(raw, now),
        tags=list(raw.tags),
        pipeline_tag=raw.pipeline_tag,
        downloads=raw.downloads,
        likes=raw.likes,
        quantizations=extract_quantizations(raw.siblings),
        is_private=raw.private,
        is_gated=raw.is_gated,
        has_chat_template=supports_chat(raw.tags),
        parameter_size=extract_parameter_size(raw.tags),
    )


def to_diffusion_candidate(
    raw: RawRecord, model_type: Optional[str] = None, now: Optional[datetime] = None
) -> DiffusionCandidate:
    return DiffusionCandidate(
        id=raw.id,
        author=_author_of(raw),
        last_modified=_modified_at(raw, now),
        model_type=model_type or classify_model_type(raw.tags, raw.pipeline_tag),
        tags=list(raw.tags),
        pipeline_tag=raw.pipeline_tag,
        downloads=raw.downloads,
        likes=raw.likes,
        files=filter_weight_files(raw.siblings),
        is_private=raw.private,
        is_gated=raw.is_gated,
    )


def extract_candidates(
    payloads: Iterable[Any], now: Optional[datetime] = None
) -> List[Candidate]:
    """Extract every well-formed record; malformed ones are skipped."""
    candidates: List[Candidate] = []
    for payload in payloads:
        raw = parse_raw_record(payload)
        if raw is not None:
            candidates.append(to_candidate(raw, now))
    return candidates


def extract_diffusion_candidates(
    payloads: Iterable[Any],
    model_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[DiffusionCandidate]:
    candidates: List[DiffusionCandidate] = []
    for payload in payloads:
        raw = parse_raw_record(payload)
        if raw is None:
            continue
        candidate = to_diffusion_candidate(raw, model_type, now)
        if candidate.files:
            candidates.append(candidate)
    return candidates


__all__ = [
    "RawRecord",
    "RawSibling",
    "Quantization",
    "Candidate",
    "DiffusionFile",
    "DiffusionCandidate",
    "MODEL_TYPES",
    "MODEL_TYPE_RULES",
    "extract_quantizations",
    "extract_parameter_size",
    "supports_chat",
    "classify_model_type",
    "filter_weight_files",
    "parse_raw_record",
    "to_candidate",
    "to_diffusion_candidate",
    "extract_candidates",
    "extract_diffusion_candidates",
]
