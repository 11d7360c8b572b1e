"""
Shipyard Test Suite

This directory contains the tests for the Shipyard engine:
- Unit tests for models, graph, differ and lifecycle
- Store, secret and pipeline tests
- Executor and core tests driving the in-memory runtime
- CLI tests through typer's CliRunner
"""
