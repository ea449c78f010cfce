"""Arrange crawled pages into a path-hierarchical sitemap tree."""

from __future__ import annotations

from urllib.parse import urlparse

from rich.text import Text
from rich.tree import Tree

from flowprobe.models.discovery import PageData, SitemapNode


def _normalize_path(path: str) -> str:
    return "/" if path in ("", "/") else path.rstrip("/") or "/"


def _placeholder(url: str, title: str) -> PageData:
    return PageData(url=url, title=title)


def build_sitemap(pages: list[PageData], root_url: str) -> SitemapNode:
    """Build the tree. Missing parents become placeholder nodes with empty element lists."""
    root_parsed = urlparse(root_url)
    hostname = (root_parsed.hostname or "").lower()
    origin = f"{root_parsed.scheme}://{root_parsed.netloc}"

    def on_site(page: PageData) -> bool:
        return (urlparse(page.url).hostname or "").lower() == hostname

    root_page = next(
        (p for p in pages
         if on_site(p) and _normalize_path(urlparse(p.url).path) == "/" and not urlparse(p.url).query),
        None,
    )
    if root_page is not None:
        root = SitemapNode(url=root_page.url, title=root_page.title or "Home", path="/",
                           depth=0, page_data=root_page)
    else:
        root = SitemapNode(url=root_url, title="Home", path="/", depth=0,
                           page_data=_placeholder(root_url, "Home"))

    nodes: dict[str, SitemapNode] = {"/": root}
    placeholders: set[str] = set() if root_page is not None else {"/"}

    def segments_of(page: PageData) -> int:
        return len([s for s in urlparse(page.url).path.split("/") if s])

    for page in sorted((p for p in pages if on_site(p) and p is not root_page), key=segments_of):
        parsed = urlparse(page.url)
        full_path = _normalize_path(parsed.path)
        segments = [s for s in full_path.split("/") if s]

        parent = root
        current = ""
        for i, segment in enumerate(segments):
            current += "/" + segment
            node = nodes.get(current)
            is_final = i == len(segments) - 1 and not parsed.query
            if node is None:
                if is_final:
                    node = SitemapNode(url=page.url, title=page.title or segment, path=current,
                                       depth=parent.depth + 1, page_data=page)
                else:
                    title = segment[:1].upper() + segment[1:]
                    node = SitemapNode(url=f"{origin}{current}", title=title, path=current,
                                       depth=parent.depth + 1,
                                       page_data=_placeholder(f"{origin}{current}", title))
                    placeholders.add(current)
                parent.children.append(node)
                nodes[current] = node
            elif is_final and current in placeholders:
                # A real page for a path that so far only had a placeholder
                node.url, node.title, node.page_data = page.url, page.title or segment, page
                placeholders.discard(current)
            parent = node

        if parsed.query:
            parent.children.append(SitemapNode(
                url=page.url,
                title=page.title or f"Query: ?{parsed.query}",
                path=f"{full_path}?{parsed.query}",
                depth=parent.depth + 1,
                page_data=page,
            ))

    _sort_children(root)
    return root


def _sort_children(node: SitemapNode):
    node.children.sort(key=lambda c: c.path)
    for child in node.children:
        _sort_children(child)


def count_nodes(node: SitemapNode) -> int:
    return 1 + sum(count_nodes(c) for c in node.children)


def render_sitemap_tree(node: SitemapNode, tree: Tree | None = None) -> Tree:
    """Render the sitemap as a rich Tree, children sorted by path."""
    label = Text(node.title)
    label.append(f" ({node.path})", style="dim")
    branch = Tree(label) if tree is None else tree.add(label)
    for child in sorted(node.children, key=lambda c: c.path):
        render_sitemap_tree(child, branch)
    return branch
