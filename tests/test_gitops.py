"""Tests for the Argo CD foundational objects."""

from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from nic.errors import UpstreamAPIError
from nic.gitops import (
    APPLICATION_PLURAL,
    APPPROJECT_PLURAL,
    apply_custom_object,
    project_manifest,
    root_application_manifest,
)
from nic.models import GitRepositoryConfig


def _repo(**fields: str) -> GitRepositoryConfig:
    return GitRepositoryConfig.model_validate(
        {"url": "git@github.com:acme/platform.git", "auth": {"token_env": "T"}, **fields}
    )


class TestManifests:
    """Tests for the rendered objects."""

    def test_project(self) -> None:
        """Test that the project admits any repository and in-cluster namespace."""
        project = project_manifest("argocd")

        assert project["kind"] == "AppProject"
        assert project["metadata"]["name"] == "foundational"
        assert project["spec"]["sourceRepos"] == ["*"]
        assert project["spec"]["destinations"] == [
            {"server": "https://kubernetes.default.svc", "namespace": "*"}
        ]

    def test_root_application(self) -> None:
        """Test the app-of-apps source and sync policy."""
        app = root_application_manifest("argocd", _repo())
        spec = app["spec"]

        assert app["metadata"]["name"] == "nebari-root"
        assert app["metadata"]["labels"]["app.kubernetes.io/managed-by"] == (
            "nebari-infrastructure-core"
        )
        assert spec["project"] == "foundational"
        assert spec["source"]["repoURL"] == "git@github.com:acme/platform.git"
        assert spec["source"]["targetRevision"] == "main"
        assert spec["source"]["path"] == "apps"
        assert spec["source"]["directory"]["exclude"] == "root.yaml"
        assert spec["syncPolicy"]["automated"] == {
            "prune": True,
            "selfHeal": True,
            "allowEmpty": False,
        }
        assert spec["syncPolicy"]["retry"]["limit"] == 5

    @pytest.mark.parametrize(
        "path,expected",
        [("clusters/prod", "clusters/prod/apps"), ("/clusters/prod/", "clusters/prod/apps")],
    )
    def test_root_application_path(self, path: str, expected: str) -> None:
        """Test that the repository path prefixes the apps directory."""
        app = root_application_manifest("argocd", _repo(path=path, branch="develop"))

        assert app["spec"]["source"]["path"] == expected
        assert app["spec"]["source"]["targetRevision"] == "develop"


class TestApplyCustomObject:
    """Tests for apply_custom_object."""

    def test_created_when_absent(self) -> None:
        """Test that a missing object is created."""
        custom = MagicMock()
        custom.get_namespaced_custom_object.side_effect = ApiException(status=404)
        manifest = project_manifest("argocd")

        action = apply_custom_object(custom, APPPROJECT_PLURAL, manifest)

        assert action == "created"
        custom.create_namespaced_custom_object.assert_called_once_with(
            "argoproj.io", "v1alpha1", "argocd", "appprojects", manifest
        )
        custom.replace_namespaced_custom_object.assert_not_called()

    def test_replaced_at_current_version(self) -> None:
        """Test that an existing object is replaced with its resourceVersion."""
        custom = MagicMock()
        custom.get_namespaced_custom_object.return_value = {
            "metadata": {"name": "nebari-root", "resourceVersion": "4711"}
        }
        manifest = root_application_manifest("argocd", _repo())

        action = apply_custom_object(custom, APPLICATION_PLURAL, manifest)

        assert action == "updated"
        args = custom.replace_namespaced_custom_object.call_args.args
        assert args[:5] == ("argoproj.io", "v1alpha1", "argocd", "applications", "nebari-root")
        assert args[5]["metadata"]["resourceVersion"] == "4711"
        custom.create_namespaced_custom_object.assert_not_called()

    def test_read_error_wrapped(self) -> None:
        """Test that a failed read other than not-found is an upstream error."""
        custom = MagicMock()
        custom.get_namespaced_custom_object.side_effect = ApiException(status=403)

        with pytest.raises(UpstreamAPIError, match="read appprojects foundational"):
            apply_custom_object(custom, APPPROJECT_PLURAL, project_manifest("argocd"))

        custom.create_namespaced_custom_object.assert_not_called()

    def test_write_error_wrapped(self) -> None:
        """Test that a rejected create is an upstream error."""
        custom = MagicMock()
        custom.get_namespaced_custom_object.side_effect = ApiException(status=404)
        custom.create_namespaced_custom_object.side_effect = ApiException(status=422)

        with pytest.raises(UpstreamAPIError, match="apply appprojects foundational"):
            apply_custom_object(custom, APPPROJECT_PLURAL, project_manifest("argocd"))
