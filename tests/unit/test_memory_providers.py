"""Tests for the in-memory providers used by tests and the demo."""

from __future__ import annotations

import pytest

from cutover.core.hasher import sha256_hex
from cutover.providers import (
    AliasConflictError,
    AliasNotFoundError,
    ComputeHost,
    ComputeHostError,
    CredentialVault,
    InMemoryComputeHost,
    InMemoryCredentialVault,
    InMemorySourceProvider,
    PackageRejectedError,
    SecretNotFoundError,
    SourceAuthError,
    SourceNotFoundError,
    SourceProvider,
    VersionConflictError,
    pack_tree,
)

FN = "hello-fn"
PKG = pack_tree({"bootstrap": "x"})


class TestComputeHost:
    def test_satisfies_protocol(self, host: InMemoryComputeHost):
        assert isinstance(host, ComputeHost)

    def test_publish_requires_code(self, host: InMemoryComputeHost):
        with pytest.raises(ComputeHostError):
            host.publish_version(FN)

    def test_publish_checks_expected_hash(self, host: InMemoryComputeHost):
        host.update_code(FN, PKG)
        with pytest.raises(VersionConflictError):
            host.publish_version(FN, expected_code_sha256="0" * 64)
        info = host.publish_version(FN, expected_code_sha256=sha256_hex(PKG))
        assert info.version == "1"

    def test_every_publish_is_a_new_version(self, host: InMemoryComputeHost):
        host.update_code(FN, PKG)
        assert host.publish_version(FN).version == "1"
        assert host.publish_version(FN).version == "2"
        assert host.list_versions(FN) == ["1", "2"]

    def test_versions_are_frozen(self, host: InMemoryComputeHost):
        host.update_code(FN, PKG)
        host.publish_version(FN)
        host.update_code(FN, pack_tree({"bootstrap": "y"}))
        assert host.version_code(FN, "1") == PKG
        assert host.get_version(FN, "1").code_sha256 == sha256_hex(PKG)

    def test_non_zip_rejected(self, host: InMemoryComputeHost):
        with pytest.raises(PackageRejectedError):
            host.update_code(FN, b"not a zip")
        lenient = InMemoryComputeHost([FN], validate_packages=False)
        assert lenient.update_code(FN, b"anything").code_sha256 == sha256_hex(b"anything")

    def test_unknown_function(self, host: InMemoryComputeHost):
        with pytest.raises(ComputeHostError):
            host.update_code("nope", PKG)
        host.create_function("nope")
        host.update_code("nope", PKG)

    def test_alias_lifecycle(self, host: InMemoryComputeHost):
        host.update_code(FN, PKG)
        host.publish_version(FN)
        host.publish_version(FN)
        with pytest.raises(AliasNotFoundError):
            host.get_alias(FN, "live")
        with pytest.raises(AliasNotFoundError):
            host.set_alias(FN, "live", "1")
        host.create_alias(FN, "live", "1")
        with pytest.raises(AliasConflictError):
            host.create_alias(FN, "live", "2")
        with pytest.raises(AliasConflictError):
            host.set_alias(FN, "live", "2", expected_prior_version="2")
        host.set_alias(FN, "live", "2", expected_prior_version="1")
        assert host.get_alias(FN, "live") == "2"

    def test_alias_must_target_published_version(self, host: InMemoryComputeHost):
        with pytest.raises(ComputeHostError):
            host.create_alias(FN, "live", "1")

    def test_calls_record_mutations_only(self, host: InMemoryComputeHost):
        host.update_code(FN, PKG)
        host.publish_version(FN)
        host.get_version(FN, "1")
        host.create_alias(FN, "live", "1")
        assert [op for op, _, _ in host.calls] == ["update_code", "publish_version", "create_alias"]


class TestSourceProvider:
    def test_satisfies_protocol(self):
        assert isinstance(InMemorySourceProvider(), SourceProvider)

    def test_fetch_head(self):
        provider = InMemorySourceProvider()
        rev = provider.add_branch("acme", "hello", "main", {"main.go": "package main"})
        snap = provider.fetch("acme", "hello", "main")
        assert snap.revision == rev
        assert snap.archive == pack_tree({"main.go": "package main"})

    def test_pinned_revision(self):
        provider = InMemorySourceProvider()
        old = provider.add_branch("acme", "hello", "main", {"a": "1"})
        provider.add_branch("acme", "hello", "main", {"a": "2"})
        with pytest.raises(SourceNotFoundError):
            provider.fetch("acme", "hello", "main", revision=old)

    def test_missing_branch(self):
        with pytest.raises(SourceNotFoundError):
            InMemorySourceProvider().fetch("acme", "hello", "main")

    def test_token_required(self):
        provider = InMemorySourceProvider(required_token="t")
        provider.add_branch("acme", "hello", "main", {"a": "1"})
        with pytest.raises(SourceAuthError):
            provider.fetch("acme", "hello", "main")
        assert provider.fetch("acme", "hello", "main", token="t").branch == "main"
        assert provider.fetches == 2


class TestCredentialVault:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryCredentialVault(), CredentialVault)

    def test_plain_and_field_lookup(self):
        vault = InMemoryCredentialVault({"plain": "s3cret", "doc": '{"github-token": "t"}'})
        assert vault.get_secret("plain") == "s3cret"
        assert vault.get_secret("doc", "github-token") == "t"

    @pytest.mark.parametrize("name,field", [("missing", None), ("plain", "x"), ("doc", "other")])
    def test_not_found(self, name, field):
        vault = InMemoryCredentialVault({"plain": "s3cret", "doc": '{"github-token": "t"}'})
        with pytest.raises(SecretNotFoundError):
            vault.get_secret(name, field)

    def test_put_secret(self):
        vault = InMemoryCredentialVault()
        vault.put_secret("k", "v")
        assert vault.get_secret("k") == "v"
