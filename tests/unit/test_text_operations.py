"""Unit tests for toolhub.operations.text."""

import fitz  # PyMuPDF
import pytest

from toolhub.core.errors import InputRejected, InvalidParameters
from toolhub.operations import build_registry
from toolhub.operations.text import (
    CaseConvertParams,
    ExtractParams,
    GrammarParams,
    HtmlToPdfParams,
    SummarizeParams,
    TextToPdfParams,
    WordCountParams,
    case_convert,
    convert_case,
    extract_from_pdf,
    grammar_check,
    html_to_pdf,
    summarize,
    text_to_pdf,
    word_count,
)
from toolhub.pipeline.media import MediaType
from toolhub.pipeline.models import OperationKind


class TestRegistration:
    def test_kinds(self, settings):
        registry = build_registry(settings)
        assert registry.lookup("text.text-to-pdf").kind is OperationKind.DELIVERABLE
        assert registry.lookup("text.html-to-pdf").text_field == "html"
        computations = (
            "text.word-count", "text.summarize", "text.grammar-check", "text.case-convert", "text.extract-from-pdf",
        )
        for op in computations:
            assert registry.lookup(op).kind is OperationKind.COMPUTATION


class TestWordCount:
    SAMPLE = "Hello world. This is a test!\n\nSecond paragraph here."

    def test_basic_statistics(self, text_asset):
        result = word_count([text_asset(self.SAMPLE)], WordCountParams(), None)
        stats = result.payload["statistics"]
        assert stats["words"] == 9
        assert stats["sentences"] == 3
        assert stats["paragraphs"] == 2
        assert stats["lines"] == 3
        assert stats["charactersWithSpaces"] == len(self.SAMPLE)
        assert stats["readingTime"] == {"minutes": 1, "seconds": 3, "formattedTime": "3 sec"}
        assert result.outputs == []

    def test_characters_without_spaces(self, text_asset):
        params = WordCountParams(include_spaces=False, detailed=False)
        stats = word_count([text_asset("a b  c")], params, None).payload["statistics"]
        assert stats["characters"] == 3
        assert "mostFrequentWords" not in stats

    def test_detailed_frequency(self, text_asset):
        stats = word_count([text_asset("The cat. The dog. THE end.")], WordCountParams(), None).payload["statistics"]
        assert stats["mostFrequentWords"][0] == {"word": "the", "count": 3}
        assert stats["uniqueWords"] == 4
        assert stats["lexicalDiversity"] == round(4 / 6, 3)

    def test_long_reading_time(self, text_asset):
        stats = word_count([text_asset("word " * 450)], WordCountParams(), None).payload["statistics"]
        assert stats["readingTime"]["minutes"] == 3
        assert stats["readingTime"]["formattedTime"] == "2 min 15 sec"


class TestSummarize:
    TEXT = " ".join(f"Sentence number {i} talks about a different aspect of the topic." for i in range(10))

    def test_too_short(self, text_asset):
        with pytest.raises(InputRejected, match="Text is too short to summarize"):
            summarize([text_asset("Too short. Tiny.")], SummarizeParams(), None)

    def test_numbered_short_summary(self, text_asset):
        params = SummarizeParams(length="short", format="numbered")
        payload = summarize([text_asset(self.TEXT)], params, None).payload
        lines = payload["summary"].splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("1. Sentence number 0")
        assert payload["statistics"]["originalSentences"] == 10
        assert payload["statistics"]["summarySentences"] == 2

    def test_keeps_original_order(self, text_asset):
        params = SummarizeParams(length="long", format="bullets")
        summary = summarize([text_asset(self.TEXT)], params, None).payload["summary"]
        numbers = [int(line.split()[3]) for line in summary.splitlines()]
        assert numbers == sorted(numbers)
        assert all(line.startswith("• ") for line in summary.splitlines())


class TestGrammarCheck:
    def test_reports_issue_types(self, text_asset):
        payload = grammar_check([text_asset("this is  bad. the the cat sat.")], GrammarParams(), None).payload
        types = [issue["type"] for issue in payload["issues"]]
        assert types.count("capitalization") == 2
        assert "spacing" in types
        assert "repetition" in types
        assert payload["statistics"]["totalIssues"] == 4
        assert payload["statistics"]["majorIssues"] == 3

    def test_long_sentence(self, text_asset):
        sentence = "A " + " ".join(f"word{i}" for i in range(30)) + " end."
        types = [i["type"] for i in grammar_check([text_asset(sentence)], GrammarParams(), None).payload["issues"]]
        assert types == ["readability"]

    def test_issue_list_is_capped(self, text_asset):
        payload = grammar_check([text_asset(" ".join(f"item{i}." for i in range(40)))], GrammarParams(), None).payload
        assert len(payload["issues"]) == 20
        assert payload["statistics"]["totalIssues"] == 40


class TestCaseConvert:
    @pytest.mark.parametrize("case_type, text, expected", [
        ("upper", "Hello", "HELLO"),
        ("lower", "HeLLo", "hello"),
        ("title", "hello WORLD", "Hello World"),
        ("sentence", "hello. WORLD is big", "Hello. World is big"),
        ("camel", "Hello world example", "helloWorldExample"),
        ("pascal", "hello world", "HelloWorld"),
        ("snake", "someCamelCase text", "some_camel_case_text"),
        ("kebab", "Hello World", "hello-world"),
        ("alternating", "abcd", "aBcD"),
        ("inverse", "AbC", "aBc"),
    ])
    def test_cases(self, case_type, text, expected):
        assert convert_case(text, case_type) == expected

    def test_case_names_are_normalized(self):
        assert CaseConvertParams.model_validate({"caseType": "snake_case"}).case_type == "snake"
        assert CaseConvertParams.model_validate({"caseType": "UPPER"}).case_type == "upper"

    def test_unknown_case(self, settings):
        spec = build_registry(settings).lookup("text.case-convert")
        with pytest.raises(InvalidParameters, match="caseType"):
            spec.parse_params({"caseType": "shouty"})

    def test_payload(self, text_asset):
        payload = case_convert([text_asset("make me loud")], CaseConvertParams(case_type="upper"), None).payload
        assert payload["convertedText"] == "MAKE ME LOUD"
        assert payload["caseType"] == "upper"
        assert payload["statistics"]["wordCount"] == 3


class TestPdfOutput:
    def test_text_to_pdf(self, text_asset, work_dir):
        text = "First line\nSecond line with more words"
        result = text_to_pdf([text_asset(text)], TextToPdfParams(font="courier", page_size="letter"), work_dir)
        output = result.outputs[0]
        assert output.suggested_name == "text-document.pdf"
        with fitz.open(str(output.local_path)) as doc:
            assert doc.page_count == 1
            assert "Second line" in doc[0].get_text()
            assert round(doc[0].rect.width) == 612
        assert result.payload == {"pageCount": 1, "wordCount": 6, "characterCount": len(text)}

    def test_html_to_pdf(self, text_asset, work_dir):
        html = "<h1>Quarterly report</h1><p>Revenue went up.</p>"
        result = html_to_pdf([text_asset(html, field="html")], HtmlToPdfParams(), work_dir)
        assert result.outputs[0].suggested_name == "html-document.pdf"
        with fitz.open(str(result.outputs[0].local_path)) as doc:
            assert "Quarterly report" in doc[0].get_text()
        assert result.payload == {"pageCount": 1}


class TestExtractFromPdf:
    @pytest.fixture
    def scanned(self, asset_factory, pdf_bytes):
        return asset_factory("notes.pdf", pdf_bytes(3, text="Chapter"), MediaType.PDF)

    def test_every_page(self, scanned):
        result = extract_from_pdf([scanned], ExtractParams(), None)
        assert result.payload["text"] == "Chapter 1\n\nChapter 2\n\nChapter 3"
        assert result.payload["wordCount"] == 6
        assert result.payload["pageCount"] == 3
        assert result.payload["pagesExtracted"] == 3
        assert result.outputs == []

    def test_selected_pages(self, scanned):
        result = extract_from_pdf([scanned], ExtractParams(pages="1,3", page_separator=" | "), None)
        assert result.payload["text"] == "Chapter 1 | Chapter 3"
        assert result.message == "Extracted text from 2 page(s)"

    def test_blank_pdf(self, asset_factory):
        with fitz.open() as doc:
            doc.new_page()
            data = doc.tobytes()
        result = extract_from_pdf([asset_factory("blank.pdf", data, MediaType.PDF)], ExtractParams(), None)
        assert result.payload["text"] == ""
        assert result.message == "No extractable text found"

    def test_pages_outside_document(self, scanned):
        with pytest.raises(InputRejected, match="No requested page"):
            extract_from_pdf([scanned], ExtractParams(pages="9"), None)
