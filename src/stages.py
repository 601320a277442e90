"""The fixed MaaS deployment sequence.

Order is significant and linear: CRDs before the resources that use them,
operators before the objects they manage. Only the platform check and the
cluster domain lookup abort the run; every other stage warns and continues.
"""

from actions import (
    VerifyPlatformAction,
    ResolveClusterDomainAction,
    FeatureGateAction,
    CreateNamespacesAction,
    CleanupLeftoverCRDsAction,
    RestartDeploymentAction,
    ApplyManifestAction,
    InstallDependencyAction,
    EnsureServingPlatformAction,
    PatchAudienceAction,
    PinImageAction,
    TemporaryWorkaroundsAction,
    StatusReportAction,
)
from config import DeployConfig
from readiness import (
    CRDEstablished,
    CSVSucceeded,
    ConditionTrue,
    PodsReady,
    RolloutComplete,
    WebhooksReady,
)
from sequencer import FailurePolicy, StageSpec

ABORT = FailurePolicy.ABORT


def build_stages(config: DeployConfig) -> list[StageSpec]:
    """Return the deployment stages in execution order."""
    ns = config.kuadrant_namespace

    return [
        StageSpec('verify-platform', 'Check OpenShift platform and tooling',
                  action=VerifyPlatformAction(name='verify-platform'),
                  policy=ABORT),

        StageSpec('cluster-domain', 'Resolve cluster domain',
                  action=ResolveClusterDomainAction(name='cluster-domain'),
                  policy=ABORT),

        StageSpec('feature-gates', 'Check OpenShift version and Gateway API feature gates',
                  action=FeatureGateAction(name='feature-gates')),

        StageSpec('namespaces', 'Create namespaces',
                  action=CreateNamespacesAction(name='namespaces')),

        StageSpec('leftover-crds', 'Clean up leftover Kuadrant CRDs',
                  action=CleanupLeftoverCRDsAction(name='leftover-crds', installed_csv=config.kuadrant_csv)),

        StageSpec('cert-manager', 'Install cert-manager',
                  action=InstallDependencyAction(name='cert-manager', dependency='cert-manager'),
                  waits=(CRDEstablished(config.cert_manager_crd, timeout=config.cert_manager_timeout),)),

        StageSpec('kuadrant', 'Install Kuadrant operators',
                  action=InstallDependencyAction(name='kuadrant', dependency='kuadrant')),

        StageSpec('gateway', 'Deploy Gateway and GatewayClass',
                  action=ApplyManifestAction(name='gateway', path=config.gateway_manifest,
                                             render=True, server_side=True, force_conflicts=True)),

        StageSpec('serving-platform', 'Ensure OpenDataHub/RHOAI KServe',
                  action=EnsureServingPlatformAction(name='serving-platform'),
                  waits=(PodsReady(config.serving_namespace),)),

        StageSpec('operators', 'Wait for Kuadrant operators to be installed by OLM',
                  waits=tuple(
                      [CSVSucceeded(name, namespace=ns, timeout=timeout)
                       for name, timeout in config.operator_csvs.items()]
                      + [CRDEstablished(name, timeout=timeout)
                         for name, timeout in config.kuadrant_crds.items()]
                  )),

        StageSpec('operator-webhooks', 'Wait for Kuadrant validating webhooks',
                  waits=(WebhooksReady(ns),)),

        StageSpec('policy-config', 'Deploy Kuadrant configuration',
                  action=ApplyManifestAction(name='policy-config', path=config.kuadrant_manifest)),

        StageSpec('maas-api', 'Deploy MaaS API',
                  action=ApplyManifestAction(name='maas-api', path=config.maas_api_kustomization,
                                             kustomize=True, render=True),
                  waits=(PodsReady(config.api_namespace),)),

        StageSpec('operator-restart', 'Restart Kuadrant operator for Gateway API provider recognition',
                  action=RestartDeploymentAction(name='operator-restart',
                                                 deployment=config.kuadrant_operator_deployment,
                                                 namespace=ns),
                  waits=(RolloutComplete(config.kuadrant_operator_deployment, ns,
                                         timeout=config.rollout_timeout),)),

        StageSpec('service-mesh', 'Wait for Service Mesh CRDs',
                  waits=(CRDEstablished(config.mesh_crd, timeout=config.mesh_timeout),)),

        StageSpec('gateway-ready', 'Wait for Gateway to be programmed',
                  waits=(ConditionTrue('gateway', config.gateway_name, config.gateway_namespace,
                                       'Programmed', timeout=config.gateway_timeout),)),

        StageSpec('gateway-policies', 'Apply Gateway policies',
                  action=ApplyManifestAction(name='gateway-policies', path=config.policies_kustomization,
                                             kustomize=True, server_side=True, force_conflicts=True)),

        StageSpec('audience-patch', 'Patch AuthPolicy with the cluster token audience',
                  action=PatchAudienceAction(name='audience-patch')),

        StageSpec('limitador-image', 'Update Limitador image for metrics exposure',
                  action=PinImageAction(name='limitador-image')),

        StageSpec('workarounds', 'Temporary workarounds (to be removed)',
                  action=TemporaryWorkaroundsAction(name='workarounds'),
                  waits=tuple(RolloutComplete(deployment, ns, timeout=config.rollout_timeout)
                              for deployment in (config.kuadrant_operator_deployment,
                                                 config.authorino_operator_deployment,
                                                 config.limitador_operator_deployment))),

        StageSpec('observability', 'Deploy observability components',
                  action=ApplyManifestAction(name='observability', path=config.observability_kustomization,
                                             kustomize=True)),

        StageSpec('status-report', 'Report component and policy status',
                  action=StatusReportAction(name='status-report')),
    ]
