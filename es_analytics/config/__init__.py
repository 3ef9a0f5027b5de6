"""Request body templates for search engine calls."""

from .query_templates import QueryTemplates, TemplateRenderer, index_template_name

__all__ = ["QueryTemplates", "TemplateRenderer", "index_template_name"]
