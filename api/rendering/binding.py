"""Binding of one data row into a certificate template.

Binding is a pure transformation: (template, row, certificate id) in, a
MaterializedArtifact out. It never touches persistence and never raises for
row content; missing columns keep the template's default text and odd
values are stringified.
"""

import logging
from collections.abc import Mapping
from typing import Any

from rendering.verification_image import (
    build_verification_url,
    regenerate_verification_image,
)
from schemas import (
    VERIFICATION_URL_TOKEN,
    BindableNode,
    MaterializedArtifact,
    StaticNode,
    TemplateDocument,
    VerificationCodeNode,
    VerificationCodeStyle,
)

logger = logging.getLogger(__name__)

VERIFY_PREFIX = "Verify: "
FOOTER_FONT_SIZE = 10
FOOTER_COLOR = "#666666"
FOOTER_OFFSET = 25


def stringify_value(value: Any) -> str:
    """Render a cell value as certificate text.

    Spreadsheet numbers such as ``2024.0`` print without the trailing ``.0``.
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_verification_text(node: StaticNode) -> bool:
    return node.shape == "text" and (
        node.is_verification_url or VERIFICATION_URL_TOKEN in (node.text or "")
    )


def _verification_footer(template: TemplateDocument, url: str) -> StaticNode:
    return StaticNode(
        name="verification-footer",
        shape="text",
        text=f"{VERIFY_PREFIX}{url}",
        left=template.width / 2,
        top=template.height - FOOTER_OFFSET,
        origin_x="center",
        origin_y="center",
        font_size=FOOTER_FONT_SIZE,
        font_family="Arial",
        fill=FOOTER_COLOR,
        text_align="center",
    )


async def bind(
    template: TemplateDocument,
    row: Mapping[str, Any],
    certificate_id: str,
    *,
    site_url: str,
) -> MaterializedArtifact:
    """Resolve every placeholder of ``template`` for one data row.

    - Bindable nodes take ``row[dynamic_key]`` when the column is present.
    - Verification code nodes get a fresh image for ``certificate_id``.
    - Text holding ``{{VERIFICATION_URL}}`` becomes ``Verify: <url>``.
    - Without any verification code or text, a footer with the URL is added.
    """
    verification_url = build_verification_url(certificate_id, site_url)
    nodes: list[BindableNode | VerificationCodeNode | StaticNode] = []
    unresolved: list[str] = []
    has_verification_text = False

    for node in template.canvas_graph:
        if isinstance(node, BindableNode):
            if node.dynamic_key in row:
                nodes.append(
                    node.model_copy(
                        update={
                            "text": stringify_value(row[node.dynamic_key]),
                            "is_placeholder": False,
                        }
                    )
                )
            else:
                unresolved.append(node.dynamic_key)
                nodes.append(node)

        elif isinstance(node, VerificationCodeNode):
            style = VerificationCodeStyle(
                size=node.size,
                color=node.color,
                background_color=node.background_color,
            )
            image = await regenerate_verification_image(
                certificate_id, style, site_url=site_url
            )
            nodes.append(
                node.model_copy(
                    update={"verification_id": certificate_id, "image_png": image}
                )
            )

        elif _is_verification_text(node):
            has_verification_text = True
            nodes.append(
                node.model_copy(
                    update={
                        "text": f"{VERIFY_PREFIX}{verification_url}",
                        "is_verification_url": False,
                    }
                )
            )

        else:
            if node.shape == "text" and VERIFY_PREFIX in (node.text or ""):
                has_verification_text = True
            nodes.append(node)

    if not template.has_verification_code and not has_verification_text:
        nodes.append(_verification_footer(template, verification_url))

    if unresolved:
        logger.debug(
            "binding.columns.missing",
            extra={"certificate_id": certificate_id, "keys": unresolved},
        )

    return MaterializedArtifact(
        template_id=template.id,
        certificate_id=certificate_id,
        verification_url=verification_url,
        width=template.width,
        height=template.height,
        background=template.background,
        nodes=nodes,
        unresolved_keys=unresolved,
    )
