"""Pydantic schemas for templates, artifacts, and API request/response validation."""

import json
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

VERIFICATION_URL_TOKEN = "{{VERIFICATION_URL}}"

# A4 landscape in points, the editor's default page
DEFAULT_CANVAS_WIDTH = 842
DEFAULT_CANVAS_HEIGHT = 595

Scalar = str | int | float | bool | None
DataRow = dict[str, Any]


class TemplateValidationError(ValueError):
    """Raised when a canvas graph cannot be turned into a TemplateDocument."""


# =============================================================================
# Canvas graph
# =============================================================================


class _NodeBase(BaseModel):
    """Layout shared by every drawable node."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    left: float = 0
    top: float = 0
    width: float | None = None
    height: float | None = None
    angle: float = 0
    opacity: float = 1
    origin_x: Literal["left", "center", "right"] = "left"
    origin_y: Literal["top", "center", "bottom"] = "top"


class _TextStyle(BaseModel):
    font_size: float = 24
    font_family: str = "Helvetica"
    font_weight: str = "normal"
    font_style: str = "normal"
    fill: str = "#000000"
    text_align: Literal["left", "center", "right", "justify"] = "left"


class BindableNode(_TextStyle, _NodeBase):
    """Text whose content comes from one data-row column."""

    kind: Literal["bindable"] = "bindable"
    dynamic_key: str
    text: str = ""
    is_placeholder: bool = True

    @model_validator(mode="before")
    @classmethod
    def _default_placeholder_text(cls, data: Any) -> Any:
        # Only raw input without text gets the {{key}} default; bound values
        # (including "") are kept as given.
        if isinstance(data, dict) and data.get("text") is None and data.get("dynamic_key"):
            data = {**data, "text": f"{{{{{data['dynamic_key']}}}}}"}
        return data


class VerificationCodeNode(_NodeBase):
    """Scannable code image that encodes the certificate's verification URL.

    ``image_png`` is empty on templates and filled per row by binding.
    """

    kind: Literal["verification_code"] = "verification_code"
    size: int = Field(default=200, gt=0, le=2000)
    color: str = "#000000"
    background_color: str = "#ffffff"
    verification_id: str | None = None
    image_png: bytes | None = None


class StaticNode(_TextStyle, _NodeBase):
    """Anything the binder copies through untouched (except verification text)."""

    kind: Literal["static"] = "static"
    shape: Literal["text", "rect", "ellipse", "line", "image"] = "text"
    text: str | None = None
    src: str | None = None
    stroke: str | None = None
    stroke_width: float = 0
    is_verification_url: bool = False


CanvasNode = Annotated[
    BindableNode | VerificationCodeNode | StaticNode,
    Field(discriminator="kind"),
]


class VerificationCodeStyle(BaseModel):
    """Inputs for regenerating a verification image without a full re-bind."""

    size: int = Field(default=200, gt=0, le=2000)
    color: str = "#000000"
    background_color: str = "#ffffff"


# Fabric.js object types that carry text
_FABRIC_TEXT_TYPES = {"text", "i-text", "textbox", "variabletextbox"}
_FABRIC_SHAPES = {
    "rect": "rect",
    "ellipse": "ellipse",
    "circle": "ellipse",
    "line": "line",
    "image": "image",
}


def _fabric_layout(obj: dict[str, Any]) -> dict[str, Any]:
    scale_x = float(obj.get("scaleX") or 1)
    scale_y = float(obj.get("scaleY") or 1)
    width = obj.get("width")
    height = obj.get("height")
    layout: dict[str, Any] = {
        "name": obj.get("name"),
        "left": float(obj.get("left") or 0),
        "top": float(obj.get("top") or 0),
        "width": float(width) * scale_x if width is not None else None,
        "height": float(height) * scale_y if height is not None else None,
        "angle": float(obj.get("angle") or 0),
        "opacity": float(obj.get("opacity", 1)),
    }
    if obj.get("originX") in ("left", "center", "right"):
        layout["origin_x"] = obj["originX"]
    if obj.get("originY") in ("top", "center", "bottom"):
        layout["origin_y"] = obj["originY"]
    return layout


def _fabric_text_style(obj: dict[str, Any]) -> dict[str, Any]:
    style: dict[str, Any] = {}
    if obj.get("fontSize") is not None:
        style["font_size"] = float(obj["fontSize"]) * float(obj.get("scaleY") or 1)
    if obj.get("fontFamily"):
        style["font_family"] = str(obj["fontFamily"])
    if obj.get("fontWeight") is not None:
        style["font_weight"] = str(obj["fontWeight"])
    if obj.get("fontStyle"):
        style["font_style"] = str(obj["fontStyle"])
    if isinstance(obj.get("fill"), str):
        style["fill"] = obj["fill"]
    if obj.get("textAlign") in ("left", "center", "right", "justify"):
        style["text_align"] = obj["textAlign"]
    return style


def _node_from_fabric(obj: dict[str, Any]) -> BindableNode | VerificationCodeNode | StaticNode:
    obj_type = str(obj.get("type", "")).lower()
    layout = _fabric_layout(obj)

    if obj_type in _FABRIC_TEXT_TYPES and obj.get("dynamicKey"):
        return BindableNode(
            **layout,
            **_fabric_text_style(obj),
            dynamic_key=str(obj["dynamicKey"]),
            text=str(obj.get("text") or f"{{{{{obj['dynamicKey']}}}}}"),
            is_placeholder=bool(obj.get("isPlaceholder", True)),
        )

    if obj_type == "image" and obj.get("verificationId"):
        size = layout["width"] or 200
        return VerificationCodeNode(
            **layout,
            size=max(1, int(round(size))),
            color=str(obj.get("qrColor") or "#000000"),
            background_color=str(obj.get("qrBackgroundColor") or "#ffffff"),
            verification_id=str(obj["verificationId"]),
        )

    if obj_type in _FABRIC_TEXT_TYPES:
        return StaticNode(
            **layout,
            **_fabric_text_style(obj),
            shape="text",
            text=str(obj.get("text") or ""),
            is_verification_url=bool(obj.get("isVerificationUrl", False)),
        )

    fill = obj.get("fill")
    return StaticNode(
        **layout,
        shape=_FABRIC_SHAPES.get(obj_type, "rect"),
        fill=fill if isinstance(fill, str) else "transparent",
        src=obj.get("src"),
        stroke=obj.get("stroke"),
        stroke_width=float(obj.get("strokeWidth") or 0),
    )


class TemplateDocument(BaseModel):
    """Design-time certificate layout with named placeholder fields."""

    id: str
    canvas_graph: list[CanvasNode]
    placeholder_keys: set[str] = Field(default_factory=set)
    width: int = DEFAULT_CANVAS_WIDTH
    height: int = DEFAULT_CANVAS_HEIGHT
    background: str = "#ffffff"

    @model_validator(mode="after")
    def _keys_are_declared(self) -> Self:
        undeclared = sorted(self.bound_keys - self.placeholder_keys)
        if undeclared:
            raise ValueError(
                f"Bound keys not declared as placeholders: {', '.join(undeclared)}"
            )
        return self

    @property
    def bound_keys(self) -> set[str]:
        return {
            node.dynamic_key
            for node in self.canvas_graph
            if isinstance(node, BindableNode)
        }

    @property
    def has_verification_code(self) -> bool:
        return any(isinstance(n, VerificationCodeNode) for n in self.canvas_graph)

    @classmethod
    def from_canvas_json(
        cls,
        template_id: str,
        canvas_json: str | dict[str, Any],
        *,
        width: int = DEFAULT_CANVAS_WIDTH,
        height: int = DEFAULT_CANVAS_HEIGHT,
        placeholder_keys: set[str] | None = None,
    ) -> "TemplateDocument":
        """Build a document from the editor's serialized canvas.

        Raises:
            TemplateValidationError: If the JSON is malformed or a bound key
                is missing from ``placeholder_keys``.
        """
        try:
            data = (
                json.loads(canvas_json) if isinstance(canvas_json, str) else canvas_json
            )
        except json.JSONDecodeError as e:
            raise TemplateValidationError(f"Template canvas is not valid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("objects"), list):
            raise TemplateValidationError("Template canvas has no 'objects' list")

        try:
            nodes = [
                _node_from_fabric(obj)
                for obj in data["objects"]
                if isinstance(obj, dict)
            ]
            keys = placeholder_keys
            if keys is None:
                keys = {n.dynamic_key for n in nodes if isinstance(n, BindableNode)}
            background = data.get("background")
            return cls(
                id=template_id,
                canvas_graph=nodes,
                placeholder_keys=keys,
                width=width,
                height=height,
                background=background if isinstance(background, str) else "#ffffff",
            )
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            raise TemplateValidationError(str(e)) from e


class MaterializedArtifact(BaseModel):
    """A template with placeholders resolved for one row, ready for export."""

    template_id: str
    certificate_id: str
    verification_url: str
    width: int
    height: int
    background: str = "#ffffff"
    nodes: list[CanvasNode]
    unresolved_keys: list[str] = Field(default_factory=list)


# =============================================================================
# Templates API
# =============================================================================


class TemplateCreateRequest(BaseModel):
    """Request to store a new template."""

    name: str = Field(min_length=1, max_length=255)
    canvas_json: str = Field(min_length=2)
    width: int = Field(default=DEFAULT_CANVAS_WIDTH, gt=0, le=10000)
    height: int = Field(default=DEFAULT_CANVAS_HEIGHT, gt=0, le=10000)
    owner_id: str | None = Field(default=None, max_length=255)
    is_public: bool = False
    creator_name: str | None = Field(default=None, max_length=255)
    tags: list[str] = Field(default_factory=list, max_length=20)


class TemplateSummary(BaseModel):
    """Template listing entry (no canvas payload)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    width: int
    height: int
    is_public: bool
    creator_name: str | None = None
    tags: list[str] = Field(default_factory=list)
    certificate_count: int = 0
    updated_at: datetime


class TemplateResponse(TemplateSummary):
    canvas_json: str
    owner_id: str | None = None


class TemplateListResponse(BaseModel):
    templates: list[TemplateSummary]
    count: int


# =============================================================================
# Certificates API
# =============================================================================


class OutputFormat(StrEnum):
    PDF = "pdf"
    PNG = "png"
    BOTH = "both"


class BatchGenerateRequest(BaseModel):
    """Run a batch for a stored template over inline data rows."""

    template_id: str = Field(min_length=1, max_length=64)
    rows: list[dict[str, Scalar]]
    issuer_name: str = Field(default="Serenity", max_length=255)
    name_field: str = "Name"
    title_field: str = "Certificate"
    email_field: str = "Email"
    description_field: str | None = None
    output_format: OutputFormat = OutputFormat.PDF
    required_columns: list[str] = Field(default_factory=list)
    owner_id: str | None = Field(default=None, max_length=255)

    @field_validator("rows")
    @classmethod
    def validate_rows(cls, v: list[dict[str, Scalar]]) -> list[dict[str, Scalar]]:
        if not v:
            raise ValueError("At least one data row is required")
        return v


class RowErrorResponse(BaseModel):
    index: int
    message: str


class BatchJobResponse(BaseModel):
    """Final state of a batch run."""

    total: int
    current: int
    status: str
    percentage: float
    errors: list[RowErrorResponse]
    generated_ids: list[str]
    is_cancelled: bool


class CertificateSummary(BaseModel):
    """Issuer-facing certificate listing entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    template_id: str
    recipient_name: str
    recipient_email: str | None = None
    title: str
    issuer_name: str
    issued_at: datetime
    is_active: bool
    view_count: int


class CertificateListResponse(BaseModel):
    certificates: list[CertificateSummary]


# =============================================================================
# Verification API
# =============================================================================


class VerificationError(StrEnum):
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    SERVER_ERROR = "server_error"


class VerifiedCertificate(BaseModel):
    """Public, sanitized view of a certificate."""

    id: str
    recipient_name: str
    recipient_email: str | None = None
    title: str
    description: str | None = None
    issued_at: datetime
    issuer_name: str
    view_count: int
    template_id: str | None = None


class VerificationResult(BaseModel):
    """Exactly one of: valid, not_found, revoked, server_error."""

    is_valid: bool | None = None
    is_new_view: bool | None = None
    certificate: VerifiedCertificate | None = None
    error: VerificationError | None = None

    @classmethod
    def valid(cls, certificate: VerifiedCertificate, *, is_new_view: bool) -> Self:
        return cls(is_valid=True, is_new_view=is_new_view, certificate=certificate)

    @classmethod
    def not_found(cls) -> Self:
        return cls(is_valid=False, error=VerificationError.NOT_FOUND)

    @classmethod
    def revoked(cls) -> Self:
        return cls(is_valid=False, error=VerificationError.REVOKED)

    @classmethod
    def server_error(cls) -> Self:
        return cls(error=VerificationError.SERVER_ERROR)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
