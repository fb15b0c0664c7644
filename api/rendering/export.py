"""Certificate export - SVG assembly, PDF/PNG conversion, and ZIP packaging.

A MaterializedArtifact is drawn as a standalone SVG document and converted
with CairoSVG. This module only handles presentation; issuing and storing
certificates lives in the services package.
"""

import asyncio
import base64
import html
import io
import re
import zipfile
from dataclasses import dataclass

from schemas import (
    BindableNode,
    MaterializedArtifact,
    OutputFormat,
    StaticNode,
    VerificationCodeNode,
)

LINE_HEIGHT_EM = 1.16
MAX_FILENAME_LENGTH = 50
ARCHIVE_FOLDER = "certificates"

_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ExportedFile:
    """One rendered output of an artifact (e.g. its PDF)."""

    extension: str
    content: bytes
    media_type: str


@dataclass(frozen=True)
class Deliverable:
    """A named file ready to hand to the issuer."""

    certificate_id: str
    filename: str
    content: bytes
    media_type: str


def sanitize_filename(name: str) -> str:
    """Strip characters that are invalid in file names and cap the length."""
    cleaned = _INVALID_FILENAME_CHARS.sub("_", name)
    cleaned = _WHITESPACE.sub("_", cleaned)
    return cleaned[:MAX_FILENAME_LENGTH] or "certificate"


def _esc(value: str) -> str:
    return html.escape(value, quote=True)


def _fmt(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def _box_origin(
    node: BindableNode | StaticNode | VerificationCodeNode,
    width: float,
    height: float,
) -> tuple[float, float]:
    """Top-left corner of a node given its origin anchors."""
    x = node.left
    y = node.top
    if node.origin_x == "center":
        x -= width / 2
    elif node.origin_x == "right":
        x -= width
    if node.origin_y == "center":
        y -= height / 2
    elif node.origin_y == "bottom":
        y -= height
    return x, y


def _transform(node: BindableNode | StaticNode | VerificationCodeNode) -> str:
    if not node.angle:
        return ""
    return f' transform="rotate({_fmt(node.angle)} {_fmt(node.left)} {_fmt(node.top)})"'


def _text_svg(node: BindableNode | StaticNode) -> str:
    text = node.text or ""
    lines = text.split("\n") or [""]
    box_width = node.width or 0
    box_height = node.height or node.font_size * LINE_HEIGHT_EM * len(lines)
    x, y = _box_origin(node, box_width, box_height)

    anchor = {"center": "middle", "right": "end"}.get(node.text_align, "start")
    if anchor == "middle":
        x += box_width / 2
    elif anchor == "end":
        x += box_width

    tspans = "".join(
        f'<tspan x="{_fmt(x)}" dy="{0 if i == 0 else LINE_HEIGHT_EM}em">'
        f"{_esc(line)}</tspan>"
        for i, line in enumerate(lines)
    )
    return (
        f'<text x="{_fmt(x)}" y="{_fmt(y + node.font_size)}" '
        f'font-family="{_esc(node.font_family)}" font-size="{_fmt(node.font_size)}" '
        f'font-weight="{_esc(node.font_weight)}" font-style="{_esc(node.font_style)}" '
        f'fill="{_esc(node.fill)}" text-anchor="{anchor}" '
        f'opacity="{_fmt(node.opacity)}"{_transform(node)}>{tspans}</text>'
    )


def _shape_svg(node: StaticNode) -> str:
    width = node.width or 0
    height = node.height or 0
    x, y = _box_origin(node, width, height)
    stroke = (
        f' stroke="{_esc(node.stroke)}" stroke-width="{_fmt(node.stroke_width)}"'
        if node.stroke and node.stroke_width
        else ""
    )
    common = f' opacity="{_fmt(node.opacity)}"{stroke}{_transform(node)}'

    if node.shape == "image":
        if not node.src:
            return ""
        return (
            f'<image x="{_fmt(x)}" y="{_fmt(y)}" width="{_fmt(width)}" '
            f'height="{_fmt(height)}" href="{_esc(node.src)}"{common}/>'
        )
    if node.shape == "ellipse":
        return (
            f'<ellipse cx="{_fmt(x + width / 2)}" cy="{_fmt(y + height / 2)}" '
            f'rx="{_fmt(width / 2)}" ry="{_fmt(height / 2)}" '
            f'fill="{_esc(node.fill)}"{common}/>'
        )
    if node.shape == "line":
        return (
            f'<line x1="{_fmt(x)}" y1="{_fmt(y)}" x2="{_fmt(x + width)}" '
            f'y2="{_fmt(y + height)}"{common}/>'
        )
    return (
        f'<rect x="{_fmt(x)}" y="{_fmt(y)}" width="{_fmt(width)}" '
        f'height="{_fmt(height)}" fill="{_esc(node.fill)}"{common}/>'
    )


def _code_svg(node: VerificationCodeNode) -> str:
    if not node.image_png:
        return ""
    size = node.width or node.size
    x, y = _box_origin(node, size, size)
    encoded = base64.b64encode(node.image_png).decode("ascii")
    return (
        f'<image x="{_fmt(x)}" y="{_fmt(y)}" width="{_fmt(size)}" '
        f'height="{_fmt(size)}" href="data:image/png;base64,{encoded}"'
        f"{_transform(node)}/>"
    )


def artifact_to_svg(artifact: MaterializedArtifact) -> str:
    """Draw a materialized artifact as a standalone SVG document."""
    parts = [
        '<svg xmlns="http://www.w3.org/2000/svg" '
        'xmlns:xlink="http://www.w3.org/1999/xlink" '
        f'width="{artifact.width}" height="{artifact.height}" '
        f'viewBox="0 0 {artifact.width} {artifact.height}">',
        f'<rect width="100%" height="100%" fill="{_esc(artifact.background)}"/>',
    ]
    for node in artifact.nodes:
        if isinstance(node, VerificationCodeNode):
            parts.append(_code_svg(node))
        elif isinstance(node, BindableNode) or node.shape == "text":
            parts.append(_text_svg(node))
        else:
            parts.append(_shape_svg(node))
    parts.append("</svg>")
    return "\n".join(p for p in parts if p)


def _import_cairosvg():
    try:
        import cairosvg
    except OSError as e:
        if "cairo" in str(e).lower():
            raise RuntimeError(
                "Certificate export requires the Cairo library. "
                "On macOS: brew install cairo. "
                "On Ubuntu/Debian: apt-get install libcairo2-dev. "
                "On Alpine: apk add cairo-dev."
            ) from e
        raise
    return cairosvg


def svg_to_pdf(svg_content: str) -> bytes:
    """Convert SVG string to PDF bytes using CairoSVG.

    Raises:
        RuntimeError: If cairo library is not installed on the system
    """
    cairosvg = _import_cairosvg()
    return cairosvg.svg2pdf(bytestring=svg_content.encode("utf-8"))


def svg_to_png(svg_content: str, *, scale: float = 2.0) -> bytes:
    """Convert SVG string to PNG bytes using CairoSVG.

    Raises:
        RuntimeError: If cairo library is not installed on the system
    """
    cairosvg = _import_cairosvg()
    return cairosvg.svg2png(bytestring=svg_content.encode("utf-8"), scale=scale)


class SvgArtifactExporter:
    """Default exporter: SVG drawn from the artifact, converted by CairoSVG.

    Conversion is CPU-bound, so it runs in a worker thread to keep the event
    loop responsive during long batches.
    """

    def __init__(
        self,
        output_format: OutputFormat = OutputFormat.PDF,
        *,
        png_scale: float = 2.0,
    ) -> None:
        self.output_format = output_format
        self.png_scale = png_scale

    async def render(self, artifact: MaterializedArtifact) -> list[ExportedFile]:
        svg_content = artifact_to_svg(artifact)
        files: list[ExportedFile] = []

        if self.output_format in (OutputFormat.PDF, OutputFormat.BOTH):
            pdf = await asyncio.to_thread(svg_to_pdf, svg_content)
            files.append(ExportedFile("pdf", pdf, "application/pdf"))

        if self.output_format in (OutputFormat.PNG, OutputFormat.BOTH):
            png = await asyncio.to_thread(
                lambda: svg_to_png(svg_content, scale=self.png_scale)
            )
            files.append(ExportedFile("png", png, "image/png"))

        return files


def build_archive(deliverables: list[Deliverable]) -> bytes:
    """Package deliverables into a ZIP under a ``certificates/`` folder."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=6
    ) as archive:
        for item in deliverables:
            archive.writestr(f"{ARCHIVE_FOLDER}/{item.filename}", item.content)
    return buffer.getvalue()
