"""
Services package for the IPTV catalog service

This package contains all business logic and service layer components.
Modules are imported directly (providers depend on the parser and type
modules here, so this package does not re-export the aggregator).
"""
