#!/usr/bin/env python3
"""Tests for CLI module, including end-to-end runs against a fake cluster."""

import json
import logging
from unittest.mock import MagicMock, patch

import pytest

import cli
from conftest import FakeCluster

EXPECTED_STAGE_COUNT = 22


@pytest.fixture
def offline(monkeypatch, clock):
    """Stub everything that would leave the process besides the fake cluster."""
    monkeypatch.delenv('CLUSTER_DOMAIN', raising=False)
    monkeypatch.setattr('actions.platform.tool_version', lambda cmd: 'v1.0.0')
    monkeypatch.setattr('actions.platform.time.sleep', clock.sleep)
    monkeypatch.setattr('actions.cluster.time.sleep', clock.sleep)
    monkeypatch.setattr('actions.manifests.kustomize_build', lambda path: (True, f'# kustomize {path.name}\n'))
    monkeypatch.setattr('actions.manifests.requests.get',
                        lambda url, timeout: MagicMock(text='kind: CustomResourceDefinition\n'))
    root = logging.getLogger()
    monkeypatch.setattr(root, 'handlers', root.handlers[:])
    monkeypatch.setattr(root, 'level', root.level)


class TestParser:
    """Test argument parsing."""

    def test_default_command_is_deploy(self):
        args = cli.build_parser().parse_args([])
        assert args.command == 'deploy'
        assert args.skip == []

    def test_repeated_skip(self):
        args = cli.build_parser().parse_args(['--skip', 'observability', '-s', 'workarounds'])
        assert args.skip == ['observability', 'workarounds']

    def test_invalid_command(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(['destroy'])


class TestMainOptions:
    """Test non-deploying entry paths."""

    def test_list_stages(self, project_root, capsys):
        assert cli.main(['--list-stages', '--project-root', str(project_root)]) == 0
        out = capsys.readouterr().out
        assert 'verify-platform' in out
        assert '[abort]' in out

    def test_unknown_skip(self, project_root, capsys):
        assert cli.main(['--skip', 'nope', '-p', str(project_root)]) == 1
        assert 'Unknown stage(s): nope' in capsys.readouterr().out

    @pytest.mark.parametrize('stage', ['verify-platform', 'cluster-domain'])
    def test_required_stage_cannot_be_skipped(self, project_root, capsys, stage):
        assert cli.main(['--skip', stage, '-p', str(project_root)]) == 1
        assert f'Cannot skip required stage(s): {stage}' in capsys.readouterr().out

    def test_missing_config_file(self, project_root, capsys):
        assert cli.main(['-c', str(project_root / 'absent.yaml'), '-p', str(project_root)]) == 1
        assert 'Config file not found' in capsys.readouterr().out

    def test_dry_run(self, project_root, capsys):
        with patch('sequencer.Sequencer._run_stage') as mock_stage:
            assert cli.main(['--dry-run', '-p', str(project_root)]) == 0
        mock_stage.assert_not_called()
        assert 'DRY-RUN' in capsys.readouterr().out

    def test_status_json(self, project_root, fake_cluster, offline, capsys):
        assert cli.main(['status', '--json-output', '-p', str(project_root)]) == 0
        status = json.loads(capsys.readouterr().out)
        assert status['gateway']['Programmed'] == 'True'

    def test_print_next_steps(self, capsys):
        cli.print_next_steps('apps.example.com')
        assert 'https://maas.apps.example.com' in capsys.readouterr().out


class TestEndToEnd:
    """Full deploy runs against an in-memory cluster."""

    def test_converged_cluster(self, project_root, fake_cluster, offline, capsys):
        assert cli.main(['--json-output', '-p', str(project_root)]) == 0

        outcome = json.loads(capsys.readouterr().out)
        assert outcome['success'] is True
        assert len(outcome['stages']) == EXPECTED_STAGE_COUNT
        assert {s['status'] for s in outcome['stages']} == {'passed'}
        assert all(count > 0 for count in outcome['status']['pods_running'].values())

        gateway = next(text for text in fake_cluster.applied if 'kind: Gateway' in text)
        assert 'maas.apps.example.com' in gateway
        assert fake_cluster.patched[0][0] == 'authpolicy'

    def test_missing_domain_aborts_before_any_apply(self, project_root, monkeypatch, offline, capsys):
        cluster = FakeCluster(domain='').install(monkeypatch)

        assert cli.main(['-p', str(project_root)]) == 1

        assert cluster.applied == []
        assert cluster.namespaces_created == []
        assert cluster.patched == []
        assert 'ABORTED' in capsys.readouterr().out

    def test_skipping_domain_lookup_applies_nothing(self, project_root, monkeypatch, offline, capsys):
        cluster = FakeCluster(domain='').install(monkeypatch)

        assert cli.main(['--json-output', '-s', 'cluster-domain', '-p', str(project_root)]) == 1

        assert cluster.applied == []
        assert cluster.namespaces_created == []

    def test_not_openshift_aborts(self, project_root, monkeypatch, offline):
        cluster = FakeCluster().install(monkeypatch)
        monkeypatch.setattr('kube.api_group_available', lambda group: False)

        assert cli.main(['-p', str(project_root)]) == 1
        assert cluster.applied == []

    def test_unconverged_operator_still_exits_zero(self, project_root, monkeypatch, offline, capsys):
        cluster = FakeCluster().install(monkeypatch)
        healthy = cluster.get_resource

        def get_resource(kind, name, namespace=None):
            if kind == 'csv' and name.startswith('dns-operator'):
                return {'status': {'phase': 'Installing'}}
            return healthy(kind, name, namespace)
        monkeypatch.setattr('kube.get_resource', get_resource)

        assert cli.main(['--json-output', '-p', str(project_root)]) == 0

        stages = {s['name']: s for s in json.loads(capsys.readouterr().out)['stages']}
        assert stages['operators']['status'] == 'warned'
        assert 'dns-operator.v0.15.0' in stages['operators']['message']
        assert stages['policy-config']['status'] == 'passed'
        assert stages['status-report']['status'] == 'passed'

    def test_skip_stages(self, project_root, fake_cluster, offline, capsys):
        assert cli.main(['--json-output', '-s', 'observability', '-s', 'workarounds',
                         '-p', str(project_root)]) == 0
        stages = {s['name']: s['status'] for s in json.loads(capsys.readouterr().out)['stages']}
        assert stages['observability'] == 'skipped'
        assert stages['workarounds'] == 'skipped'
        assert fake_cluster.restarted == ['kuadrant-operator-controller-manager']
