"""
Command Line Interface for DPROV.
"""
import click
from ..BUILDERS.provisioner import Provisioner
from ..CONFIG.settings import Settings
from ..CONVERTERS.to_containerfile import ContainerfileConverter
from ..CONVERTERS.to_shell_script import ShellScriptConverter
from ..errors import ProvisionError, RecipeError
from ..PARSERS.yaml_recipe_parser import load_recipe
from ..RUNNERS.engine import ContainerEngine

def _parse_build_args(values):
    build_args = {}
    for value in values:
        if '=' not in value:
            raise click.BadParameter(f"expected KEY=VALUE, got {value!r}", param_hint="--build-arg")
        key, val = value.split('=', 1)
        build_args[key] = val
    return build_args

def _fail(ctx, error: ProvisionError):
    step = error.step or ("recipe" if isinstance(error, RecipeError) else "build")
    click.echo(f"Error [{step}]: {error}", err=True)
    ctx.exit(error.exit_code)

def _provisioner(ctx, **overrides) -> Provisioner:
    settings = Settings.load(ctx.obj['env_file'], **overrides)
    engine = ContainerEngine(ContainerEngine.detect(settings.engine), timeout=settings.step_timeout)
    return Provisioner(engine, settings)

@click.group()
@click.option('--env-file', default='.env', help='Settings file (dotenv format)')
@click.pass_context
def cli(ctx, env_file):
    """
    DPROV - build container images from provisioning recipes.

    A recipe names a base image, upgrades every installed package and then
    installs a list of packages, in that order.
    """
    ctx.ensure_object(dict)
    ctx.obj['env_file'] = env_file

@cli.command()
@click.argument('recipe', type=click.Path())
@click.option('--tag', '-t', default=None, help='Tag for the resulting image')
@click.option('--build-arg', multiple=True, help='Override an ARG value (KEY=VALUE)')
@click.option('--engine', default=None, help='Container engine executable (docker, podman, auto)')
@click.option('--retries', type=int, default=None, help='Retries for network failures')
@click.option('--preflight/--no-preflight', default=None, help='Check the base image in its registry first')
@click.option('--dry-run', is_flag=True, help='Print the plan without building')
@click.pass_context
def build(ctx, recipe, tag, build_arg, engine, retries, preflight, dry_run):
    """Build an image from a recipe."""
    try:
        spec = load_recipe(recipe, _parse_build_args(build_arg))
        if dry_run:
            provisioner = Provisioner(ContainerEngine(verbose=False), Settings.load(ctx.obj['env_file']))
            _echo_plan(provisioner, spec)
            return
        provisioner = _provisioner(ctx, engine=engine, retries=retries, preflight=preflight)
        result = provisioner.build(spec, tag=tag)
    except ProvisionError as e:
        _fail(ctx, e)
        return
    click.echo(result.image_id)

@cli.command()
@click.argument('recipe', type=click.Path())
@click.option('--build-arg', multiple=True, help='Override an ARG value (KEY=VALUE)')
@click.pass_context
def plan(ctx, recipe, build_arg):
    """Print the steps a build would run."""
    try:
        spec = load_recipe(recipe, _parse_build_args(build_arg))
        _echo_plan(Provisioner(ContainerEngine(verbose=False), Settings.load(ctx.obj['env_file'])), spec)
    except ProvisionError as e:
        _fail(ctx, e)

def _echo_plan(provisioner, spec):
    for index, step in enumerate(provisioner.plan(spec), start=1):
        detail = step.script or ' '.join(step.command)
        click.echo(f"{index}. {step.name:8} {detail}")

@cli.command()
@click.argument('recipe', type=click.Path())
@click.option('--format', '-f', 'fmt', type=click.Choice(['containerfile', 'shell']), default='containerfile')
@click.option('--out', '-o', default=None, help='Output file (defaults to stdout)')
@click.option('--build-arg', multiple=True, help='Override an ARG value (KEY=VALUE)')
@click.pass_context
def render(ctx, recipe, fmt, out, build_arg):
    """Render a recipe as a Containerfile or a shell script."""
    try:
        spec = load_recipe(recipe, _parse_build_args(build_arg))
        converter = ContainerfileConverter() if fmt == 'containerfile' else ShellScriptConverter()
        if out:
            converter.convert(spec, out)
        else:
            click.echo(converter.render(spec), nl=False)
    except ProvisionError as e:
        _fail(ctx, e)

@cli.command()
@click.argument('recipe', type=click.Path())
@click.option('--build-arg', multiple=True, help='Override an ARG value (KEY=VALUE)')
@click.pass_context
def check(ctx, recipe, build_arg):
    """Check that the base image exists in its registry."""
    try:
        spec = load_recipe(recipe, _parse_build_args(build_arg))
        info = Provisioner(ContainerEngine(verbose=False), Settings.load(ctx.obj['env_file'])).preflight(spec)
    except ProvisionError as e:
        _fail(ctx, e)
        return
    click.echo(f"{info['reference']} {info.get('digest') or ''}".rstrip())

@cli.command()
@click.argument('image')
@click.argument('recipe', type=click.Path())
@click.option('--engine', default=None, help='Container engine executable (docker, podman, auto)')
@click.option('--build-arg', multiple=True, help='Override an ARG value (KEY=VALUE)')
@click.pass_context
def verify(ctx, image, recipe, engine, build_arg):
    """Check that an image has every package of a recipe installed."""
    try:
        spec = load_recipe(recipe, _parse_build_args(build_arg))
        report = _provisioner(ctx, engine=engine).verify(image, spec)
    except ProvisionError as e:
        _fail(ctx, e)
        return

    for package in report.present:
        click.echo(f"ok       {package}")
    for package in report.missing:
        click.echo(f"missing  {package}")
    if not report.ok:
        ctx.exit(1)

def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})

if __name__ == '__main__':
    main()
