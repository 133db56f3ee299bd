"""
Headless-browser page audit worker.

This module provides a standalone worker that drives a headless Chromium
through Lighthouse and reports normalized JSON audit results to a calling
orchestrator over process arguments and standard streams.
"""
