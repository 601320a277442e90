"""Reusable deployment actions."""

from actions.platform import VerifyPlatformAction, ResolveClusterDomainAction, FeatureGateAction
from actions.cluster import CreateNamespacesAction, CleanupLeftoverCRDsAction, RestartDeploymentAction
from actions.manifests import ApplyManifestAction, InstallDependencyAction, EnsureServingPlatformAction
from actions.postdeploy import PatchAudienceAction, PinImageAction, TemporaryWorkaroundsAction
from actions.status import StatusReportAction

__all__ = [
    'VerifyPlatformAction',
    'ResolveClusterDomainAction',
    'FeatureGateAction',
    'CreateNamespacesAction',
    'CleanupLeftoverCRDsAction',
    'RestartDeploymentAction',
    'ApplyManifestAction',
    'InstallDependencyAction',
    'EnsureServingPlatformAction',
    'PatchAudienceAction',
    'PinImageAction',
    'TemporaryWorkaroundsAction',
    'StatusReportAction',
]
