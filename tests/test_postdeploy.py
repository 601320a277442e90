#!/usr/bin/env python3
"""Tests for post-deploy corrections and the status report."""

import pytest

import kube
from actions.postdeploy import (
    PatchAudienceAction,
    PinImageAction,
    TemporaryWorkaroundsAction,
    derive_token_audience,
)
from actions.status import StatusReportAction, collect_status, format_status
from config import DeployConfig
from conftest import make_token


@pytest.fixture
def config(tmp_path):
    return DeployConfig(project_root=tmp_path)


class TestDeriveTokenAudience:
    """Test JWT audience extraction."""

    def test_list_audience_takes_first(self):
        token = make_token({'aud': ['https://kubernetes.default.svc', 'rh-sso']})
        assert derive_token_audience(token) == 'https://kubernetes.default.svc'

    def test_string_audience(self):
        assert derive_token_audience(make_token({'aud': 'maas'})) == 'maas'

    @pytest.mark.parametrize('claims', [{}, {'aud': []}, {'aud': 'null'}, {'aud': ''}, {'aud': 42}])
    def test_no_usable_audience(self, claims):
        assert derive_token_audience(make_token(claims)) is None

    @pytest.mark.parametrize('token', [None, '', 'not-a-jwt', 'a.!!!.c'])
    def test_malformed_token(self, token):
        assert derive_token_audience(token) is None

    def test_payload_needing_padding(self):
        """Unpadded base64url of varying length decodes correctly."""
        for audience in ('a', 'ab', 'abc', 'abcd'):
            assert derive_token_audience(make_token({'aud': audience})) == audience


class TestPatchAudienceAction:
    """Test AuthPolicy audience patch."""

    def test_patches_with_detected_audience(self, config, fake_cluster):
        result = PatchAudienceAction(name='audience-patch').run(config, None)

        assert result.success is True
        kind, name, patch_type, ops = fake_cluster.patched[0]
        assert (kind, name, patch_type) == ('authpolicy', 'maas-api-auth-policy', 'json')
        assert ops == [{'op': 'replace', 'path': config.audience_path,
                        'value': 'https://kubernetes.default.svc'}]
        assert result.context_updates == {'audience': 'https://kubernetes.default.svc'}

    def test_skips_without_audience(self, config, fake_cluster, monkeypatch):
        monkeypatch.setattr(kube, 'create_token', lambda *a, **k: None)
        result = PatchAudienceAction(name='audience-patch').run(config, None)
        assert result.success is True
        assert 'skipped' in result.message
        assert fake_cluster.patched == []

    def test_patch_failure_warns(self, config, fake_cluster, monkeypatch):
        def refuse(*args, **kwargs):
            raise kube.KubeError('authpolicies.kuadrant.io "maas-api-auth-policy" not found')
        monkeypatch.setattr(kube, 'patch_resource', refuse)
        result = PatchAudienceAction(name='audience-patch').run(config, None)
        assert result.success is False
        assert 'manual configuration' in result.message


class TestPinImageAction:
    """Test Limitador image pin."""

    def test_patch_body(self, config, fake_cluster):
        result = PinImageAction(name='limitador-image').run(config, None)
        assert result.success is True
        kind, name, patch_type, body = fake_cluster.patched[0]
        assert (kind, name, patch_type) == ('limitador', 'limitador', 'merge')
        assert body == {'spec': {'image': config.limitador_image, 'version': ''}}


class TestTemporaryWorkaroundsAction:
    """Test best-effort workaround steps."""

    def test_all_steps_applied(self, config, fake_cluster):
        result = TemporaryWorkaroundsAction(name='workarounds').run(config, None)
        assert result.success is True
        assert fake_cluster.deleted == [('networkpolicy', 'odh-model-controller'),
                                        ('pod', 'control-plane=controller-manager')]
        assert fake_cluster.restarted == ['authorino-operator', 'limitador-operator-controller-manager']

    def test_missing_policy_does_not_stop_other_steps(self, config, fake_cluster, monkeypatch):
        def delete(*args, **kwargs):
            raise kube.KubeError('networkpolicies "odh-model-controller" not found')
        monkeypatch.setattr(kube, 'delete_resource', delete)

        result = TemporaryWorkaroundsAction(name='workarounds').run(config, None)
        assert result.success is False
        assert '3/4 workarounds applied' in result.message
        assert len(fake_cluster.restarted) == 2


class TestStatusReport:
    """Test status collection and formatting."""

    def test_collect_status(self, config, fake_cluster):
        status = collect_status(config)
        assert status['pods_running'] == {'MaaS API': 1, 'Kuadrant': 1, 'KServe': 1}
        assert status['gateway'] == {'Accepted': 'True', 'Programmed': 'True'}
        assert status['policies_enforced']['TelemetryPolicy'] == 'True'

    def test_collect_status_on_empty_cluster(self, config, fake_cluster, monkeypatch):
        monkeypatch.setattr(kube, 'list_resources', lambda *a, **k: [])
        monkeypatch.setattr(kube, 'get_resource', lambda *a, **k: None)
        status = collect_status(config)
        assert set(status['pods_running'].values()) == {0}
        assert status['gateway']['Programmed'] == ''

    def test_format_status(self):
        text = format_status({
            'pods_running': {'MaaS API': 2},
            'gateway': {'Programmed': ''},
            'policies_accepted': {'AuthPolicy': 'True'},
            'policies_enforced': {'AuthPolicy': 'False'},
        })
        assert 'MaaS API pods running: 2' in text
        assert 'Programmed: unknown' in text
        assert 'AuthPolicy Enforced: False' in text

    def test_action_stores_status(self, config, fake_cluster):
        result = StatusReportAction(name='status-report').run(config, None)
        assert result.success is True
        assert 'status' in result.context_updates
