"""
Unit tests for MIME structure classification

Tests the attachment rules over BODYSTRUCTURE trees and parsed parts
"""
import pytest

from conftest import (
    attachment_disposition,
    binary_part,
    build_message,
    inline_disposition,
    multipart,
    text_part,
    with_inline_signature,
    with_pdf,
)
from src.models.mime import MimeLeaf, MimeMultipart
from src.services.mime_structure import (
    is_attachment_part,
    iter_leaf_parts,
    structure_from_bodystructure,
    structure_has_attachments,
)


@pytest.mark.unit
@pytest.mark.imap
class TestIsAttachmentPart:
    """Leaf classification rules"""

    @pytest.mark.parametrize("maintype,subtype,disposition,expected", [
        ("application", "pdf", "attachment", True),
        ("image", "png", "attachment", True),
        ("text", "plain", "attachment", True),
        ("image", "png", "inline", False),
        ("application", "pdf", "inline", False),
        ("text", "plain", None, False),
        ("text", "html", None, False),
        ("multipart", "mixed", None, False),
        ("image", "jpeg", None, False),
        ("application", "pdf", None, True),
        ("text", "calendar", None, True),
        ("message", "rfc822", None, True),
        (None, None, None, False),
    ])
    def test_classification(self, maintype, subtype, disposition, expected):
        """
        Test leaf classification table

        Given: A part's type, subtype and disposition
        When: is_attachment_part() is called
        Then: Explicit attachments count, inline parts and bodies never do
        """
        assert is_attachment_part(maintype, subtype, disposition) is expected

    def test_disposition_is_case_insensitive(self):
        """
        Test disposition casing

        Given: Upper-case dispositions
        When: Classified
        Then: Same outcome as lower-case
        """
        assert is_attachment_part("application", "pdf", "ATTACHMENT") is True
        assert is_attachment_part("application", "pdf", "Inline") is False


@pytest.mark.unit
@pytest.mark.imap
class TestStructureFromBodystructure:
    """BODYSTRUCTURE conversion and recursive checks"""

    def test_single_text_part(self):
        """
        Test plain single-part message

        Given: A text/plain BODYSTRUCTURE
        When: Converted
        Then: One leaf without attachments
        """
        node = structure_from_bodystructure(text_part())

        assert isinstance(node, MimeLeaf)
        assert node.content_type == "text/plain"
        assert structure_has_attachments(node) is False

    def test_pdf_attachment_in_mixed(self):
        """
        Test mixed message with a PDF

        Given: multipart/mixed with text and an attached PDF
        When: Converted and checked
        Then: The PDF leaf carries its disposition and filename
        """
        body = multipart(
            text_part(),
            binary_part(b"application", b"pdf", attachment_disposition(b"contract.pdf")),
        )

        node = structure_from_bodystructure(body)

        assert isinstance(node, MimeMultipart)
        assert node.subtype == "mixed"
        pdf = node.parts[1]
        assert pdf.disposition == "attachment"
        assert pdf.filename == "contract.pdf"
        assert pdf.size == 2048
        assert structure_has_attachments(node) is True

    def test_inline_signature_is_not_attachment(self):
        """
        Test signature image

        Given: multipart/related with HTML and an inline PNG
        When: Checked
        Then: No attachment
        """
        body = multipart(
            multipart(text_part(), text_part(b"html"), subtype=b"alternative"),
            binary_part(b"image", b"png", inline_disposition()),
            subtype=b"related",
        )

        assert structure_has_attachments(structure_from_bodystructure(body)) is False

    def test_bare_image_is_not_attachment(self):
        """
        Test image without disposition

        Given: An image part with no Content-Disposition
        When: Checked
        Then: No attachment
        """
        body = multipart(text_part(), binary_part(b"image", b"gif"))

        assert structure_has_attachments(structure_from_bodystructure(body)) is False

    def test_untyped_disposition_binary_is_attachment(self):
        """
        Test application part without disposition

        Given: An application/zip part with only a name parameter
        When: Checked
        Then: Counted as attachment, filename taken from the name parameter
        """
        body = multipart(text_part(), binary_part(b"application", b"zip", name=b"docs.zip"))

        node = structure_from_bodystructure(body)

        assert node.parts[1].filename == "docs.zip"
        assert structure_has_attachments(node) is True

    def test_nested_attachment_found(self):
        """
        Test deep nesting

        Given: An attachment three levels down
        When: Checked
        Then: Found by the recursive walk
        """
        body = multipart(
            multipart(
                multipart(text_part(), text_part(b"html"), subtype=b"alternative"),
                binary_part(b"application", b"msword", attachment_disposition(b"brief.doc")),
            ),
        )

        assert structure_has_attachments(structure_from_bodystructure(body)) is True

    def test_none_structure(self):
        """
        Test missing structure

        Given: No BODYSTRUCTURE
        When: Checked
        Then: No attachment
        """
        assert structure_has_attachments(None) is False


@pytest.mark.unit
@pytest.mark.imap
class TestIterLeafParts:
    """Parsed-content leaf iteration"""

    def test_plain_message_yields_itself(self):
        message = build_message()

        leaves = list(iter_leaf_parts(message))

        assert len(leaves) == 1
        assert leaves[0].get_content_type() == "text/plain"

    def test_mixed_message_yields_every_leaf(self):
        """
        Test mixed message leaves

        Given: Body, inline signature and a PDF
        When: Iterated
        Then: Three leaves in document order
        """
        message = with_pdf(with_inline_signature(build_message()))

        types = [part.get_content_type() for part in iter_leaf_parts(message)]

        assert types == ["text/plain", "image/png", "application/pdf"]
