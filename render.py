'''Markdown to HTML rendering for the public post page.'''
import logging
from typing import Any

from flask import render_template
from markdown_it import MarkdownIt
from markupsafe import Markup

from models import Post

logger = logging.getLogger(__name__)

EXCERPT_LENGTH : int = 160


def _link_open(self:Any, tokens:list, idx:int, options:Any, env:Any) -> str:
    token = tokens[idx]
    href : str = token.attrGet('href') or ''
    if href.startswith(('http://', 'https://')):
        token.attrSet('target', '_blank')
        token.attrSet('rel', 'noopener noreferrer')
    return self.renderToken(tokens, idx, options, env)


def _build_renderer() -> MarkdownIt:
    md = MarkdownIt('commonmark', {'breaks': True, 'html': False, 'linkify': True, 'typographer': True})
    md.enable(['table', 'strikethrough', 'replacements', 'smartquotes', 'linkify'])
    md.add_render_rule('link_open', _link_open)
    return md


renderer = _build_renderer()


def render_markdown(source:str) -> Markup:
    return Markup(renderer.render(source))


def extract_text(source:str, max_length:int=EXCERPT_LENGTH) -> str:
    '''Plain-text excerpt of the rendered markdown, for meta descriptions.'''
    text : str = render_markdown(source).striptags()
    if len(text) <= max_length:
        return text
    return text[:max_length].rstrip() + '...'


def render_post_page(post:Post) -> str:
    html : str = render_template(
        'post.html',
        post_data=post,
        body=render_markdown(post.content),
        excerpt=extract_text(post.content),
    )
    logger.debug('Post rendered to HTML', extra={'short_id': post.short_id, 'length': len(html)})
    return html
