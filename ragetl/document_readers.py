"""
Document Readers for RAG System
Load markdown and plain text files into RagDocuments.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import markdown
from bs4 import BeautifulSoup, NavigableString, Tag

from .document import RagDocument, stable_document_id
from .interfaces.document_reader import DocumentReader

PathLike = Union[str, Path]

MARKDOWN_EXTENSIONS = ('.md', '.markdown')
TEXT_EXTENSIONS = ('.txt',)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding='utf-8')
    except UnicodeDecodeError:
        return path.read_text(encoding='latin-1')


def expand_paths(paths: Iterable[PathLike], extensions: Sequence[str]) -> List[Path]:
    """Expand directories recursively into files with the given extensions.

    Explicit file paths are kept as-is, whatever their suffix.
    """
    expanded = []
    for path in paths:
        path = Path(path)
        if path.is_dir():
            expanded.extend(sorted(
                p for p in path.glob("**/*")
                if p.is_file() and p.suffix.lower() in extensions
            ))
        else:
            expanded.append(path)
    return expanded


@dataclass
class MarkdownDocumentReaderConfig:
    """Markdown document reader config."""
    horizontal_rule_create_document: bool = True
    include_code_block: bool = False
    include_blockquote: bool = False
    additional_metadata: Dict[str, Any] = field(default_factory=dict)


class _SectionCollector:
    """Accumulates text of the current section and emits one document per flush."""

    def __init__(self, source: str, config: MarkdownDocumentReaderConfig):
        self.source = source
        self.config = config
        self.documents: List[RagDocument] = []
        self.parts: List[str] = []
        self.title: Optional[str] = None
        self.category: Optional[str] = None
        self.index = 0

    def add(self, text: str):
        text = text.strip()
        if text:
            self.parts.append(text)

    def flush(self, lang: Optional[str] = None):
        content = " ".join(self.parts).strip()
        self.parts = []
        if not content:
            self.category = None
            return

        metadata: Dict[str, Any] = {'source': self.source, 'chunk_index': self.index}
        if self.title and self.title.strip():
            metadata['title'] = self.title
        if self.category:
            metadata['category'] = self.category
        if lang and lang.strip():
            metadata['lang'] = lang
        metadata.update(self.config.additional_metadata)

        self.documents.append(RagDocument(
            text=content, metadata=metadata, id=stable_document_id(self.source, self.index)
        ))
        self.index += 1
        self.category = None


class MarkdownDocumentReader(DocumentReader):
    """Splits markdown files into one document per section.

    Headings always start a new document; horizontal rules do when
    configured. Code blocks and blockquotes become their own documents
    unless the config asks to include them in the surrounding section.
    """

    def __init__(self, markdown_files: Sequence[PathLike],
                 config: Optional[MarkdownDocumentReaderConfig] = None):
        if not markdown_files:
            raise ValueError("markdown_files cannot be empty")
        self.markdown_files = list(markdown_files)
        self.config = config or MarkdownDocumentReaderConfig()
        self.logger = logging.getLogger(__name__)

    def read(self) -> List[RagDocument]:
        documents = []
        for path in expand_paths(self.markdown_files, MARKDOWN_EXTENSIONS):
            if not path.exists():
                self.logger.warning(f"Skipping missing markdown file: {path}")
                continue
            documents.extend(self.parse(_read_text(path), str(path)))

        self.logger.info(f"Read {len(documents)} sections from {len(self.markdown_files)} markdown source(s)")
        return documents

    def parse(self, text: str, source: str) -> List[RagDocument]:
        """Parse one markdown string into section documents."""
        html = markdown.markdown(text, extensions=['fenced_code'])
        soup = BeautifulSoup(html, 'html.parser')
        collector = _SectionCollector(source, self.config)

        for node in soup.children:
            if isinstance(node, NavigableString):
                collector.add(str(node))
            elif isinstance(node, Tag):
                self._visit(node, collector)

        collector.flush()
        return collector.documents

    def _visit(self, node: Tag, collector: _SectionCollector):
        name = node.name
        if name in ('h1', 'h2', 'h3', 'h4', 'h5', 'h6'):
            collector.flush()
            collector.title = node.get_text(" ", strip=True)
            collector.category = 'header'
        elif name == 'hr':
            if self.config.horizontal_rule_create_document:
                collector.flush()
        elif name == 'blockquote':
            if not self.config.include_blockquote:
                collector.flush()
            collector.category = 'blockquote'
            collector.add(node.get_text(" ", strip=True))
        elif name == 'pre':
            if not self.config.include_code_block:
                collector.flush()
            code = node.find('code')
            lang = None
            if code is not None:
                for css_class in code.get('class') or []:
                    if css_class.startswith('language-'):
                        lang = css_class[len('language-'):]
            collector.category = 'code_block'
            collector.add((code or node).get_text())
            collector.flush(lang)
        elif name in ('ul', 'ol'):
            # Top-level items only; get_text already covers nested lists
            for item in node.find_all('li', recursive=False):
                collector.add(item.get_text(" ", strip=True))
        else:
            if node.find('code') is not None:
                collector.category = 'code_inline'
            collector.add(node.get_text(" ", strip=True))


class TextDocumentReader(DocumentReader):
    """Loads each plain text file as a single document."""

    def __init__(self, paths: Sequence[PathLike], extensions: Sequence[str] = TEXT_EXTENSIONS):
        if not paths:
            raise ValueError("paths cannot be empty")
        self.paths = list(paths)
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.logger = logging.getLogger(__name__)

    def read(self) -> List[RagDocument]:
        documents = []
        for path in expand_paths(self.paths, self.extensions):
            if not path.exists():
                self.logger.warning(f"Skipping missing text file: {path}")
                continue
            documents.append(RagDocument(
                id=stable_document_id(path, 0),
                text=_read_text(path),
                metadata={
                    'source': str(path),
                    'filename': path.name,
                    'file_type': path.suffix.lower(),
                    'chunk_index': 0
                }
            ))
        return documents
