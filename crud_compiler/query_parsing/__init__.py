# Copyright 2021-present Kensho Technologies, LLC.
"""Translate the two client query grammars into query objects in canonical wire form."""
from .filter_translator import parse_filter_string, translate_filter  # noqa
from .query_string import parse_query_string, parse_raw_query  # noqa
