"""
Pattern Scanner - finds discovery call-sites.

A discovery site is ``<receiver>.scan("<pattern>")`` where the receiver's
resolved type is the framework entry point. Anything else named ``scan``
is ignored; a matching site with a non-literal argument is an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Set

import libcst as cst

from .faults import PatternNotLiteralError, SourceLocation
from .markers import DISCOVERY_NAME, Markers
from .walker import SymbolResolver, iter_nodes, string_value

logger = logging.getLogger("routeweave.scanner")


@dataclass
class DiscoverySite:
    """One discovery call and the literal it names."""
    call: cst.Call
    receiver: cst.BaseExpression
    pattern: str
    location: SourceLocation


class PatternScanner:
    """Locates discovery call-sites in one resolved file."""

    def __init__(self, markers: Markers):
        self.markers = markers

    def is_candidate(self, resolver: SymbolResolver, node: cst.CSTNode) -> bool:
        """Property access named ``scan``, one argument, entry-point receiver."""
        if not isinstance(node, cst.Call):
            return False
        func = node.func
        if not isinstance(func, cst.Attribute) or func.attr.value != DISCOVERY_NAME:
            return False
        if len(node.args) != 1:
            return False
        return self.markers.entry_point in resolver.type_names(func.value)

    def find_sites(self, resolver: SymbolResolver) -> List[DiscoverySite]:
        """
        All discovery sites of a file, in source order.

        Raises:
            PatternNotLiteralError: A site's argument is not a static string
        """
        sites = []
        for node in iter_nodes(resolver.module):
            if not self.is_candidate(resolver, node):
                continue
            arg = node.args[0]
            pattern = None
            if arg.keyword is None and not arg.star:
                pattern = string_value(arg.value)
            if pattern is None:
                raise PatternNotLiteralError(resolver.code_for(arg.value), resolver.location(arg))
            location = resolver.location(node)
            logger.info("Found discovery pattern %r at %s", pattern, location)
            sites.append(DiscoverySite(node, node.func.value, pattern, location))
        return sites

    def scan_patterns(self, resolver: SymbolResolver) -> Set[str]:
        """Unique pattern literals declared in a file."""
        return {site.pattern for site in self.find_sites(resolver)}
