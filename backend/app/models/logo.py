"""
Pydantic models for logo uploads, processing jobs and their results.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FileType(str, Enum):
    SVG = "svg"
    PNG = "png"
    JPEG = "jpeg"
    CSS = "css"


class OptimizationLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WarningKind(str, Enum):
    SVG_COMPLEXITY = "svg-complexity"
    VML_CONVERSION = "vml-conversion"
    FILE_SIZE = "file-size"
    CSS_COMPATIBILITY = "css-compatibility"
    RASTER_CONVERSION = "raster-conversion"
    HTML_COMPATIBILITY = "html-compatibility"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FallbackType(str, Enum):
    SVG = "svg"
    PNG = "png"
    VML = "vml"


class QualityRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class FileData(BaseModel):
    """An uploaded file. Immutable once validated."""
    model_config = ConfigDict(frozen=True)

    buffer: bytes
    original_name: str
    mime_type: str
    size: int = Field(ge=0)
    file_type: FileType


class Dimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class ProcessingOptions(BaseModel):
    """Per-job configuration. Supplied once, never mutated."""
    model_config = ConfigDict(frozen=True)

    alt_text: str
    dimensions: Optional[Dimensions] = None
    optimization_level: OptimizationLevel = OptimizationLevel.MEDIUM
    generate_previews: bool = True
    # Prefix used when normalizing SVG IDs. A fresh one is generated per job
    # when not supplied.
    id_prefix: Optional[str] = None

    @field_validator("alt_text")
    @classmethod
    def alt_text_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("alt_text is required for accessibility")
        return value

    @field_validator("id_prefix")
    @classmethod
    def id_prefix_is_xml_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not value or not (value[0].isalpha() or value[0] == "_"):
            raise ValueError("id_prefix must start with a letter or underscore")
        if not all(ch.isalnum() or ch in "-_." for ch in value):
            raise ValueError("id_prefix may only contain letters, digits, '-', '_' and '.'")
        return value


class ProcessingWarning(BaseModel):
    """A non-fatal issue surfaced to the caller."""
    kind: WarningKind
    message: str
    severity: Severity


class ProcessingMetadata(BaseModel):
    original_file_size: int
    optimized_file_size: int
    compression_ratio: float
    processing_time_ms: float
    generated_at: str


class ProcessingResult(BaseModel):
    """
    Output of one pipeline run.

    png_fallback and html_snippet are always non-empty. vml_code is always
    present; it may be a placeholder block (vml_is_placeholder).
    """
    original_file: FileData
    optimized_svg: Optional[str] = None
    png_fallback: bytes
    fallback_mime_type: str = "image/png"
    vml_code: str
    base64_data_uri: str
    html_snippet: str
    warnings: List[ProcessingWarning] = Field(default_factory=list)
    metadata: ProcessingMetadata
    png_is_placeholder: bool = False
    vml_is_placeholder: bool = False
    # Whether per-client preview images are rendered for this job
    generate_previews: bool = True


class FallbackData(BaseModel):
    """Everything the HTML composer needs to build the layered snippet."""
    svg_content: Optional[str] = None
    png_data_uri: str
    vml_code: Optional[str] = None
    dimensions: Dimensions
    alt_text: str


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ClientPreview(BaseModel):
    """Per-email-client projection of a ProcessingResult."""
    client: str
    fallback_used: FallbackType
    estimated_quality: QualityRating
    preview_image: Optional[bytes] = None


class JobState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class JobStatus(BaseModel):
    """Persisted status record for a processing job."""
    status: JobState
    step: str = "validating"
    progress: int = Field(default=0, ge=0, le=100)
    message: str = ""
    error: Optional[str] = None
    updated_at: str


class JobRequest(BaseModel):
    """Request body for POST /api/jobs."""
    file_id: str
    options: ProcessingOptions
