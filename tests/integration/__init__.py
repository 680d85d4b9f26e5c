# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests for project context components.

This package contains integration tests that run the analyzer, cache,
tracker, watcher and service together against a real project tree.
"""
