import pytest
from click.testing import CliRunner
from dprov.CLI.main import cli
from dprov.REGISTRY.registry_client import RegistryClient
from dprov.errors import ImagePullError

def invoke(*args):
    runner = CliRunner()
    return runner.invoke(cli, ['--env-file', 'does-not-exist.env'] + list(args))

def test_cli_help():
    result = invoke('--help')
    assert result.exit_code == 0
    assert 'build container images' in result.output

def test_cli_build_missing_recipe():
    result = invoke('build', 'non_existent.recipe')
    assert result.exit_code == 2
    assert 'recipe not found: non_existent.recipe' in result.output

def test_cli_plan(reveal_recipe):
    result = invoke('plan', str(reveal_recipe))
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].startswith('1. pull')
    assert lines[1].endswith('dnf -y upgrade')
    assert lines[2].endswith('dnf -y install iproute nodejs git')

def test_cli_build_dry_run_does_not_touch_engine(reveal_recipe, cli_engine):
    result = invoke('build', '--dry-run', str(reveal_recipe))
    assert result.exit_code == 0
    assert cli_engine.events == []

def test_cli_build(reveal_recipe, cli_engine):
    result = invoke('build', '-t', 'slides:latest', str(reveal_recipe))
    assert result.exit_code == 0, result.output
    assert 'slides:latest' in cli_engine.images
    assert result.output.strip().splitlines()[-1].startswith('sha256:')

def test_cli_build_unknown_package(tmp_path, cli_engine):
    recipe = tmp_path / 'Containerfile'
    recipe.write_text('FROM fedora:29\nRUN dnf -y upgrade && dnf -y install not-a-real-package\n')
    result = invoke('build', str(recipe))
    assert result.exit_code == 4
    assert 'Error [install]: packages not available: not-a-real-package' in result.output

def test_cli_build_unknown_base_image(tmp_path, cli_engine):
    recipe = tmp_path / 'Containerfile'
    recipe.write_text('FROM fedora:doesnotexist\nRUN dnf -y install git\n')
    result = invoke('build', str(recipe))
    assert result.exit_code == 3
    assert [e[0] for e in cli_engine.events] == ['pull']

def test_cli_build_arg(tmp_path, cli_engine):
    recipe = tmp_path / 'Containerfile'
    recipe.write_text('ARG RELEASE=30\nFROM fedora:${RELEASE}\nRUN dnf -y install git\n')
    result = invoke('build', '--build-arg', 'RELEASE=29', str(recipe))
    assert result.exit_code == 0, result.output
    assert cli_engine.events[0] == ('pull', 'fedora:29')

def test_cli_render(reveal_recipe):
    result = invoke('render', str(reveal_recipe))
    assert result.exit_code == 0
    assert result.output == reveal_recipe.read_text()

    shell = invoke('render', '--format', 'shell', str(reveal_recipe))
    assert shell.output.startswith('#!/bin/sh')

def test_cli_check(reveal_recipe, monkeypatch):
    def missing(self, image_name):
        raise ImagePullError('fedora:29: manifest unknown (404)', step='pull')

    monkeypatch.setattr(RegistryClient, 'check_manifest', missing)
    result = invoke('check', str(reveal_recipe))
    assert result.exit_code == 3
    assert 'Error [pull]' in result.output

def test_cli_verify(reveal_recipe, cli_engine):
    result = invoke('verify', 'fedora:29', str(reveal_recipe))
    assert result.exit_code == 1
    assert 'missing  nodejs' in result.output

def test_cli_check_and_verify_take_build_args(tmp_path, cli_engine, monkeypatch):
    recipe = tmp_path / 'Containerfile'
    recipe.write_text('ARG RELEASE\nARG TOOL\nFROM fedora:${RELEASE}\nRUN dnf -y install ${TOOL}\n')
    checked = []

    def found(self, image_name):
        checked.append(image_name)
        return {'reference': f'docker.io/library/{image_name}', 'digest': 'sha256:feed', 'media_type': None}

    monkeypatch.setattr(RegistryClient, 'check_manifest', found)

    assert invoke('check', str(recipe)).exit_code == 2
    result = invoke('check', '--build-arg', 'RELEASE=29', '--build-arg', 'TOOL=git', str(recipe))
    assert result.exit_code == 0, result.output
    assert checked == ['fedora:29']
    assert result.output.strip() == 'docker.io/library/fedora:29 sha256:feed'

    assert invoke('verify', 'fedora:29', str(recipe)).exit_code == 2
    result = invoke('verify', '--build-arg', 'RELEASE=29', '--build-arg', 'TOOL=bash', 'fedora:29', str(recipe))
    assert result.exit_code == 0, result.output
    assert 'ok       bash' in result.output
