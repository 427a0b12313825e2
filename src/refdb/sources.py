"""Read a documentation source tree into structured documents.

Markdown and HTML files are supported. Each document becomes
``{path, format, title, content_text, content_html, sections, code_examples}``.
"""

import re
from pathlib import Path

from bs4 import BeautifulSoup, Tag

from refdb.errors import SourceError

MARKDOWN_SUFFIXES = {".md", ".markdown"}
HTML_SUFFIXES = {".html", ".htm"}

# Editor and build leftovers that never hold documentation
SKIP_DIRS = {".git", ".hg", ".svn", "__pycache__", "_build"}


def iter_source_files(root: Path) -> list[Path]:
    """List documentation files under ``root`` in a stable order."""
    files = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        if any(part in SKIP_DIRS for part in path.relative_to(root).parts):
            continue
        if path.suffix.lower() in MARKDOWN_SUFFIXES | HTML_SUFFIXES:
            files.append(path)
    return files


def slugify(heading: str) -> str:
    return re.sub(r"[^\w\s-]", "", heading.lower()).strip().replace(" ", "-")


def parse_markdown(content: str, name: str = "<string>") -> dict:
    """Parse markdown content into structured sections and code examples."""
    title = ""
    sections = []
    code_examples = []
    current_section = None
    in_code_block = False
    fence_line = 0
    code_lang = ""
    code_lines = []
    text_parts = []

    for lineno, line in enumerate(content.split("\n"), start=1):
        if line.startswith("```"):
            if in_code_block:
                code_text = "\n".join(code_lines)
                if code_text.strip():
                    code_examples.append({
                        "language": code_lang,
                        "code": code_text,
                        "context": current_section["heading"] if current_section else "",
                    })
                code_lines = []
                in_code_block = False
            else:
                in_code_block = True
                fence_line = lineno
                info = line.lstrip("`").strip()
                code_lang = info.split()[0] if info else "text"
            continue

        if in_code_block:
            code_lines.append(line)
            continue

        heading_match = re.match(r"^(#{1,4})\s+(.+)", line)
        if heading_match:
            level = len(heading_match.group(1))
            heading_text = heading_match.group(2).strip().rstrip("#").strip()

            if level == 1 and not title:
                title = heading_text
                continue

            if current_section and text_parts:
                current_section["content"] = "\n".join(text_parts).strip()

            current_section = {
                "heading": heading_text,
                "level": level,
                "content": "",
                "anchor": slugify(heading_text),
            }
            sections.append(current_section)
            text_parts = []
        else:
            text_parts.append(line)

    if in_code_block:
        raise SourceError(f"{name}:{fence_line}: unterminated code block")

    if current_section and text_parts:
        current_section["content"] = "\n".join(text_parts).strip()

    return {
        "title": title,
        "content_text": content,
        "content_html": "",
        "sections": sections,
        "code_examples": code_examples,
    }


def parse_html(html: str, name: str = "<string>") -> dict:
    """Extract title, sections and code examples from an HTML page."""
    soup = BeautifulSoup(html, "lxml")

    h1 = soup.find("h1")
    title = h1.get_text(strip=True).rstrip("¶").strip() if h1 else ""
    if not title and soup.title:
        title = soup.title.get_text(strip=True)

    content_el = soup.select_one("main") or soup.select_one("article") or soup.body
    if content_el is None:
        raise SourceError(f"{name}: no document body")

    sections = []
    for heading in content_el.find_all(["h2", "h3", "h4"]):
        heading_text = heading.get_text(strip=True).rstrip("¶").strip()

        # Collect text between this heading and the next
        section_parts = []
        for sibling in heading.find_next_siblings():
            if isinstance(sibling, Tag) and sibling.name in ("h1", "h2", "h3", "h4"):
                break
            section_parts.append(sibling.get_text(separator="\n", strip=True))

        sections.append({
            "heading": heading_text,
            "level": int(heading.name[1]),
            "content": "\n".join(section_parts),
            "anchor": heading.get("id") or slugify(heading_text),
        })

    code_examples = []
    for pre in content_el.find_all("pre"):
        code_el = pre.find("code") or pre
        code_text = code_el.get_text()
        if not code_text.strip():
            continue

        language = "text"
        for cls in code_el.get("class", []):
            if cls.startswith("language-"):
                language = cls.replace("language-", "")
                break

        context = ""
        prev = pre.find_previous(["h2", "h3", "h4"])
        if prev:
            context = prev.get_text(strip=True).rstrip("¶").strip()

        code_examples.append({
            "language": language,
            "code": code_text.strip(),
            "context": context,
        })

    return {
        "title": title,
        "content_text": content_el.get_text(separator="\n", strip=True),
        "content_html": str(content_el),
        "sections": sections,
        "code_examples": code_examples,
    }


def load_document(root: Path, path: Path, encoding: str) -> dict:
    """Decode and parse one source file."""
    rel = path.relative_to(root).as_posix()
    try:
        text = path.read_bytes().decode(encoding)
    except UnicodeDecodeError as e:
        raise SourceError(f"{rel}: cannot decode as {encoding} at byte {e.start}") from e
    except LookupError as e:
        raise SourceError(f"unknown source encoding: {encoding}") from e
    except OSError as e:
        raise SourceError(f"{rel}: {e.strerror or e}") from e

    if path.suffix.lower() in HTML_SUFFIXES:
        data = parse_html(text, rel)
        data["format"] = "html"
    else:
        data = parse_markdown(text, rel)
        data["format"] = "markdown"

    if not data["title"]:
        # Use filename as title fallback
        data["title"] = path.stem.replace("_", " ").title()
    data["path"] = rel.rsplit(".", 1)[0]
    return data


def load_tree(root: Path, encoding: str) -> list[dict]:
    """Load every document under ``root``."""
    if not root.is_dir():
        raise SourceError(f"source tree not found: {root}")
    return [load_document(root, path, encoding) for path in iter_source_files(root)]
