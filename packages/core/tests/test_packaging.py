"""Packaging acceptance tests: verify the package is usable after install."""

from __future__ import annotations

from pathlib import Path

import dataplane
import pytest


class TestImports:
    """Verify all public API symbols are importable."""

    def test_models_importable(self):
        from dataplane import ACL, Backend, Bind, DataplaneConfig, Frontend, Server

        assert Backend is not None
        assert Server is not None
        assert Frontend is not None
        assert Bind is not None
        assert ACL is not None
        assert DataplaneConfig is not None

    def test_lazy_imports(self):
        from dataplane import BundleResult, DataplaneClient, ErrorClass, ResourceBundle, RetryPolicy, classify_error

        assert DataplaneClient is not None
        assert ResourceBundle is not None
        assert RetryPolicy().max_attempts == 10
        assert ErrorClass.RETRYABLE.value == "retryable"
        assert callable(classify_error)
        assert BundleResult is not None

    def test_all_is_resolvable(self):
        for name in dataplane.__all__:
            assert getattr(dataplane, name) is not None

    def test_invalid_import_raises(self):
        with pytest.raises(AttributeError):
            _ = dataplane.NoSuchThing  # type: ignore[attr-defined]


class TestVersion:
    def test_version_is_semver(self):
        parts = dataplane.__version__.split(".")
        assert len(parts) >= 2
        assert all(p.isdigit() for p in parts[:2])


class TestPyTyped:
    def test_core_py_typed_exists(self):
        marker = Path(dataplane.__file__).parent / "py.typed"
        assert marker.exists(), "Missing py.typed marker in core package"
