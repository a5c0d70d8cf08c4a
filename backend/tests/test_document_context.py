# backend/tests/test_document_context.py
# 功能: 文档上下文拼接测试

"""
文档上下文测试
"""

from core.document_context import UserDocument, build_document_context


class TestBuildDocumentContext:

    def test_labels_and_order(self):
        context = build_document_context([
            {"document_type": "resume", "extracted_text": "Analyst at a bank"},
            {"document_type": "disc", "extracted_text": "High D"},
        ])
        assert context == "### Resume Summary\nAnalyst at a bank\n\n### DISC Profile\nHigh D"

    def test_custom_label(self):
        doc = UserDocument(document_type="custom", extracted_text="Notes", custom_type_name="Coach Notes")
        assert build_document_context([doc]).startswith("### Coach Notes\n")
        assert UserDocument(document_type="custom").label == "Custom Document"

    def test_per_document_truncation(self):
        context = build_document_context(
            [{"document_type": "pi", "extracted_text": "x" * 50}],
            per_document_max_chars=10,
        )
        assert context == "### Predictive Index Profile\n" + "x" * 10

    def test_documents_without_text_skipped(self):
        assert build_document_context([{"document_type": "resume", "extracted_text": ""}]) == ""
        assert build_document_context(None) == ""
