import pytest

from kubeconfig_pruner.ignore import load_ignore_file, parse_ignore_document
from kubeconfig_pruner.kubeconfig import KubeconfigError


def test_missing_ignore_file_ignores_nothing(tmp_path):
    assert load_ignore_file(tmp_path / "config-cleanup.ignore") == frozenset()


def test_ignore_file_splits_on_whitespace(tmp_path):
    path = tmp_path / "config-cleanup.ignore"
    path.write_text(
        "apiVersion: v1\n"
        "kind: ConfigMap\n"
        "data:\n"
        "  contexts: |\n"
        "    prod-east prod-west\n"
        "    staging\n"
    )

    assert load_ignore_file(path) == {"prod-east", "prod-west", "staging"}


def test_ignore_file_without_contexts_key():
    assert parse_ignore_document({"data": {"users": "u1"}}) == frozenset()


def test_invalid_ignore_file_is_fatal(tmp_path):
    path = tmp_path / "config-cleanup.ignore"
    path.write_text("data: [unclosed\n")

    with pytest.raises(KubeconfigError):
        load_ignore_file(path)


def test_ignore_contexts_must_be_a_string():
    with pytest.raises(KubeconfigError):
        parse_ignore_document({"data": {"contexts": ["a", "b"]}})
