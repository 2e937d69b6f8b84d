"""
Text tools.

text-to-pdf and html-to-pdf produce files; word count, summarize, grammar
check, case conversion and PDF text extraction are computation-only and
answer inline.
"""

import math
import re
from collections import Counter
from pathlib import Path
from typing import Dict, List, Literal, Optional

import fitz  # PyMuPDF
from pydantic import Field, field_validator

from toolhub.core.errors import InputRejected
from toolhub.operations.pdf import check_ranges, open_pdf, selected_pages, write_text_pdf
from toolhub.pipeline.media import MediaType
from toolhub.pipeline.models import Arity, OperationKind, OperationResult, OutputAsset, UploadedAsset
from toolhub.pipeline.registry import OperationSpec, ToolParams
from toolhub.pipeline.settings import PipelineSettings

MAX_HTML_PAGES = 500

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


def count_words(text: str) -> int:
    return len(text.split())


def split_sentences(text: str) -> List[str]:
    return [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]


# =============================================================================
# Parameter schemas
# =============================================================================

class TextToPdfParams(ToolParams):
    page_size: Literal["letter", "a4", "legal", "a3"] = "a4"
    font_size: float = Field(12, ge=6, le=72)
    line_spacing: float = Field(1.5, ge=1.0, le=3.0)
    margin: float = Field(72, ge=0, le=144)
    font: Literal["helvetica", "times", "courier"] = "helvetica"


class HtmlToPdfParams(ToolParams):
    page_size: Literal["letter", "a4", "legal", "a3"] = "a4"
    margin: float = Field(36, ge=0, le=144)


class WordCountParams(ToolParams):
    include_spaces: bool = True
    reading_speed: int = Field(200, ge=50, le=1000)
    detailed: bool = True


class SummarizeParams(ToolParams):
    length: Literal["short", "medium", "long"] = "medium"
    format: Literal["paragraph", "bullets", "numbered"] = "paragraph"


class GrammarParams(ToolParams):
    pass


CASE_TYPES = ("upper", "lower", "title", "sentence", "camel", "pascal", "snake", "kebab", "alternating", "inverse")


class CaseConvertParams(ToolParams):
    case_type: Literal[CASE_TYPES]

    @field_validator("case_type", mode="before")
    @classmethod
    def _normalize_case(cls, v):
        if not isinstance(v, str):
            return v
        v = v.strip().lower().replace("_", "").replace("-", "").replace(" ", "")
        if v.endswith("case") and v[:-4] in CASE_TYPES:
            return v[:-4]
        return v


class ExtractParams(ToolParams):
    pages: Optional[str] = None
    page_separator: str = Field("\n\n", max_length=20)

    @field_validator("pages")
    @classmethod
    def _check_pages(cls, v: Optional[str]) -> Optional[str]:
        return check_ranges(v)


# =============================================================================
# File-producing handlers
# =============================================================================

def text_to_pdf(inputs: List[UploadedAsset], params: TextToPdfParams, work_dir: Path) -> OperationResult:
    text = inputs[0].text
    output = work_dir / "text-document.pdf"
    page_count = write_text_pdf(
        text.splitlines(),
        output,
        page_size=params.page_size,
        font=params.font,
        font_size=params.font_size,
        line_spacing=params.line_spacing,
        margin=params.margin,
    )
    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"pageCount": page_count, "wordCount": count_words(text), "characterCount": len(text)},
        message=f"Text converted to a {page_count}-page PDF",
    )


def html_to_pdf(inputs: List[UploadedAsset], params: HtmlToPdfParams, work_dir: Path) -> OperationResult:
    output = work_dir / "html-document.pdf"
    mediabox = fitz.paper_rect(params.page_size)
    where = mediabox + (params.margin, params.margin, -params.margin, -params.margin)

    story = fitz.Story(html=inputs[0].text)
    writer = fitz.DocumentWriter(str(output))
    pages = 0
    more = True
    try:
        while more:
            if pages >= MAX_HTML_PAGES:
                raise InputRejected(f"HTML renders to more than {MAX_HTML_PAGES} pages")
            device = writer.begin_page(mediabox)
            more, _ = story.place(where)
            story.draw(device)
            writer.end_page()
            pages += 1
    finally:
        writer.close()

    return OperationResult(
        outputs=[OutputAsset.from_path(output)],
        payload={"pageCount": pages},
        message=f"HTML converted to a {pages}-page PDF",
    )


# =============================================================================
# Computation-only handlers
# =============================================================================

def _reading_time(words: int, speed: int) -> Dict[str, object]:
    minutes = math.ceil(words / speed)
    seconds = math.ceil(words / speed * 60)
    whole_minutes, rest = divmod(seconds, 60)
    formatted = f"{whole_minutes} min {rest} sec" if whole_minutes else f"{seconds} sec"
    return {"minutes": minutes, "seconds": seconds, "formattedTime": formatted}


def word_count(inputs: List[UploadedAsset], params: WordCountParams, work_dir: Optional[Path]) -> OperationResult:
    text = inputs[0].text
    characters = len(text)
    without_spaces = len(re.sub(r"\s", "", text))
    words = count_words(text)
    sentences = len(split_sentences(text))
    paragraphs = len([p for p in _PARAGRAPH_SPLIT.split(text) if p.strip()])

    statistics: Dict[str, object] = {
        "characters": characters if params.include_spaces else without_spaces,
        "charactersWithSpaces": characters,
        "charactersWithoutSpaces": without_spaces,
        "words": words,
        "sentences": sentences,
        "paragraphs": paragraphs,
        "lines": text.count("\n") + 1,
        "readingTime": _reading_time(words, params.reading_speed),
    }

    if params.detailed:
        frequency = Counter(w for w in re.sub(r"[^\w\s]", "", text.lower()).split() if w)
        statistics.update({
            "averageWordsPerSentence": round(words / sentences, 1) if sentences else 0,
            "averageWordsPerParagraph": round(words / paragraphs, 1) if paragraphs else 0,
            "mostFrequentWords": [
                {"word": word, "count": count} for word, count in frequency.most_common(10)
            ],
            "uniqueWords": len(frequency),
            "lexicalDiversity": round(len(frequency) / words, 3) if words else 0,
        })

    return OperationResult(
        payload={"statistics": statistics},
        message=f"Text analysis complete: {words} words, {sentences} sentences, {paragraphs} paragraphs",
    )


def summarize(inputs: List[UploadedAsset], params: SummarizeParams, work_dir: Optional[Path]) -> OperationResult:
    text = inputs[0].text
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > 20]
    if not sentences:
        raise InputRejected("Text is too short to summarize")

    fraction, minimum = {"short": (0.2, 1), "medium": (0.3, 2), "long": (0.4, 3)}[params.length]
    keep = max(minimum, math.ceil(len(sentences) * fraction))

    # Extractive scoring: early sentences and medium-length sentences rank higher.
    scored = []
    for index, sentence in enumerate(sentences):
        words = count_words(sentence)
        position_score = 2 if index < len(sentences) * 0.3 else 1
        length_score = 2 if 10 < words < 30 else 1
        scored.append((position_score + length_score, index, sentence))
    chosen = sorted(sorted(scored, key=lambda s: -s[0])[:keep], key=lambda s: s[1])
    selected = [sentence for _, _, sentence in chosen]

    if params.format == "bullets":
        summary = "\n".join(f"• {s}" for s in selected)
    elif params.format == "numbered":
        summary = "\n".join(f"{i}. {s}" for i, s in enumerate(selected, start=1))
    else:
        summary = ". ".join(selected) + "."

    original_words = count_words(text)
    summary_words = count_words(summary)
    reduction = (original_words - summary_words) / original_words * 100 if original_words else 0.0
    return OperationResult(
        payload={
            "summary": summary,
            "statistics": {
                "originalWords": original_words,
                "summaryWords": summary_words,
                "compressionRatio": f"{reduction:.1f}%",
                "originalSentences": len(sentences),
                "summarySentences": len(selected),
            },
        },
        message=f"Text summarized: {original_words} → {summary_words} words ({reduction:.1f}% reduction)",
    )


MAX_REPORTED_ISSUES = 20
LONG_SENTENCE_WORDS = 25


def grammar_check(inputs: List[UploadedAsset], params: GrammarParams, work_dir: Optional[Path]) -> OperationResult:
    text = inputs[0].text
    issues = []
    sentences = split_sentences(text)

    for raw in sentences:
        sentence = raw.strip()
        if "  " in sentence:
            issues.append({
                "type": "spacing",
                "severity": "minor",
                "message": "Double space found",
                "suggestion": "Use single space",
                "position": sentence.index("  "),
                "length": 2,
            })
        if re.match(r"[a-z]", sentence):
            issues.append({
                "type": "capitalization",
                "severity": "major",
                "message": "Sentence should start with capital letter",
                "suggestion": sentence[0].upper() + sentence[1:],
                "position": 0,
                "length": 1,
            })
        if count_words(sentence) > LONG_SENTENCE_WORDS:
            issues.append({
                "type": "readability",
                "severity": "minor",
                "message": "Consider breaking this long sentence",
                "suggestion": "Split into shorter sentences for better readability",
                "position": 0,
                "length": len(sentence),
            })

    words = text.lower().split()
    for index, (word, following) in enumerate(zip(words, words[1:])):
        if word == following and len(word) > 2:
            issues.append({
                "type": "repetition",
                "severity": "major",
                "message": "Repeated word found",
                "suggestion": f'Remove duplicate "{word}"',
                "position": index,
                "length": len(word),
            })

    return OperationResult(
        payload={
            "originalText": text,
            "correctedText": text,
            "issues": issues[:MAX_REPORTED_ISSUES],
            "statistics": {
                "totalIssues": len(issues),
                "majorIssues": sum(1 for i in issues if i["severity"] == "major"),
                "minorIssues": sum(1 for i in issues if i["severity"] == "minor"),
                "wordCount": len(words),
                "sentenceCount": len(sentences),
            },
        },
        message=f"Grammar check complete: {len(issues)} issues found",
    )


def _split_words(text: str) -> List[str]:
    """Words for programmer cases: splits on non-alphanumerics and camelCase humps."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", text)
    return re.findall(r"[^\W_]+", spaced)


def convert_case(text: str, case_type: str) -> str:
    if case_type == "upper":
        return text.upper()
    if case_type == "lower":
        return text.lower()
    if case_type == "title":
        return re.sub(r"\w\S*", lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)
    if case_type == "sentence":
        return re.sub(r"(^\s*\w|[.!?]\s*\w)", lambda m: m.group(0).upper(), text.lower())
    if case_type == "camel":
        words = _split_words(text)
        return "".join([w.lower() if i == 0 else w.capitalize() for i, w in enumerate(words)])
    if case_type == "pascal":
        return "".join(w.capitalize() for w in _split_words(text))
    if case_type == "snake":
        return "_".join(w.lower() for w in _split_words(text))
    if case_type == "kebab":
        return "-".join(w.lower() for w in _split_words(text))
    if case_type == "alternating":
        return "".join(c.upper() if i % 2 else c.lower() for i, c in enumerate(text))
    if case_type == "inverse":
        return text.swapcase()
    raise ValueError(f"Unknown case type: {case_type}")


def case_convert(inputs: List[UploadedAsset], params: CaseConvertParams, work_dir: Optional[Path]) -> OperationResult:
    text = inputs[0].text
    converted = convert_case(text, params.case_type)
    return OperationResult(
        payload={
            "originalText": text,
            "convertedText": converted,
            "caseType": params.case_type,
            "statistics": {
                "originalLength": len(text),
                "convertedLength": len(converted),
                "wordCount": count_words(text),
            },
        },
        message=f"Text successfully converted to {params.case_type} case",
    )


def extract_from_pdf(inputs: List[UploadedAsset], params: ExtractParams, work_dir: Optional[Path]) -> OperationResult:
    asset = inputs[0]
    with open_pdf(asset) as doc:
        total = doc.page_count
        indexes = selected_pages(params.pages, total)
        if not indexes:
            raise InputRejected(f"No requested page falls inside the document ({total} pages)")
        texts = [doc[index].get_text("text", sort=True).strip() for index in indexes]

    text = params.page_separator.join(texts).strip()
    return OperationResult(
        payload={
            "text": text,
            "wordCount": count_words(text),
            "characterCount": len(text),
            "pageCount": total,
            "pagesExtracted": len(indexes),
        },
        message=f"Extracted text from {len(indexes)} page(s)" if text else "No extractable text found",
    )


# =============================================================================
# Registration
# =============================================================================

def operation_specs(settings: PipelineSettings) -> List[OperationSpec]:
    text_only = frozenset({MediaType.TEXT})
    limit = settings.text_max_bytes
    computation = dict(
        arity=Arity.TEXT, accepted_types=text_only,
        max_input_size_bytes=limit, kind=OperationKind.COMPUTATION,
    )
    return [
        OperationSpec(
            id="text.text-to-pdf", title="convert text to PDF", arity=Arity.TEXT,
            handler=text_to_pdf, params_model=TextToPdfParams, accepted_types=text_only,
            max_input_size_bytes=limit,
        ),
        OperationSpec(
            id="text.html-to-pdf", title="convert HTML to PDF", arity=Arity.TEXT,
            handler=html_to_pdf, params_model=HtmlToPdfParams,
            accepted_types=frozenset({MediaType.HTML}), max_input_size_bytes=limit,
            text_field="html",
        ),
        OperationSpec(
            id="text.word-count", title="analyze text", handler=word_count,
            params_model=WordCountParams, **computation,
        ),
        OperationSpec(
            id="text.summarize", title="summarize text", handler=summarize,
            params_model=SummarizeParams, **computation,
        ),
        OperationSpec(
            id="text.grammar-check", title="check grammar", handler=grammar_check,
            params_model=GrammarParams, **computation,
        ),
        OperationSpec(
            id="text.case-convert", title="convert case", handler=case_convert,
            params_model=CaseConvertParams, **computation,
        ),
        OperationSpec(
            id="text.extract-from-pdf", title="extract text from PDF", arity=Arity.SINGLE,
            handler=extract_from_pdf, params_model=ExtractParams,
            accepted_types=frozenset({MediaType.PDF}), max_input_size_bytes=settings.pdf_max_bytes,
            kind=OperationKind.COMPUTATION,
        ),
    ]
