"""Plain-text rendering of problem and question statements."""

import re

from bs4 import BeautifulSoup


def html_to_text(html: str) -> str:
    """Strip markup from a statement, keeping paragraph and list breaks."""
    if not html:
        return ""
    if "<" not in html:
        return html.strip()

    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for item in soup.find_all("li"):
        item.insert_before("- ")
    for block in soup.find_all(["p", "div", "li", "pre", "h1", "h2", "h3", "h4", "tr"]):
        block.append("\n")

    text = soup.get_text()
    text = re.sub(r"[ \t]+\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def shorten(text: str, width: int = 60) -> str:
    """One-line preview of a longer text."""
    line = " ".join((text or "").split())
    if len(line) <= width:
        return line
    return line[: width - 3].rstrip() + "..."
