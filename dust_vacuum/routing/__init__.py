"""Swap route resolution and aggregator response normalization."""

from dust_vacuum.routing.adapter import ParsedQuote, RouteOutcome, parse_quote
from dust_vacuum.routing.resolver import RouteLookup, RouteResolver

__all__ = [
    "ParsedQuote",
    "RouteLookup",
    "RouteOutcome",
    "RouteResolver",
    "parse_quote",
]
