import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from reefgen.codegen.codegen import Codegen, generate_modules
from reefgen.codegen.diagnostics import DiagnosticsReport
from reefgen.codegen.schema_loader import SchemaLoader
from reefgen.config import GeneratorConfig, get_config
from reefgen.exceptions import GenerationFailed, ReefgenError

console = Console()
app = typer.Typer(
    name='reefgen',
    help='Generate typed Python clients from OpenAPI 3.0 documents',
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option('--verbose', '-v', help='Show debug logging')
    ] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(message)s',
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def print_report(report: DiagnosticsReport) -> None:
    if not len(report):
        return

    table = Table(title='Diagnostics')
    table.add_column('Severity')
    table.add_column('Kind')
    table.add_column('Location', style='dim')
    table.add_column('Message')
    for diagnostic in report:
        severity = '[red]error[/red]' if diagnostic.is_error else '[yellow]warning[/yellow]'
        table.add_row(severity, str(diagnostic.kind), escape(diagnostic.pointer), escape(diagnostic.message))
    console.print(table)


@app.command()
def generate(
    config: Annotated[
        str | None,
        typer.Option(
            '--config', '-c', help='Path to configuration file (YAML or JSON)'
        ),
    ] = None,
) -> None:
    """Generate Python client code from configuration.

    If no config file is specified, will look for default config files
    in the current directory or the [tool.reefgen] table of pyproject.toml.

    Examples:
        reefgen generate
        reefgen generate --config my-config.yaml
        reefgen generate -c config.json
    """
    try:
        settings = get_config(config)

        for document_config in settings.documents:
            with Progress(
                SpinnerColumn(),
                TextColumn('[progress.description]{task.description}'),
                console=console,
            ) as progress:
                task = progress.add_task(
                    f'Generating code for {document_config.source} in {document_config.output}...',
                    total=None,
                )

                written = Codegen(document_config).generate()

                progress.update(
                    task, description=f'Code generation completed for {document_config.source}!'
                )
            console.print('[dim]Generated files:[/dim]')
            for path in written:
                console.print(f'  - {path}')

    except GenerationFailed as e:
        print_report(e.report)
        console.print(f'[red]Error:[/red] {escape(e.message)}')
        raise typer.Exit(1)
    except ReefgenError as e:
        console.print(f'[red]Error:[/red] {escape(e.message)}')
        raise typer.Exit(1)

    console.print('[green]Successfully generated code[/green]')


@app.command()
def check(
    source: Annotated[str, typer.Argument(help='Path or URL to the OpenAPI document')],
) -> None:
    """Run the generator over a document and report diagnostics without writing anything.

    Examples:
        reefgen check ./openapi.yaml
        reefgen check https://api.example.com/openapi.json
    """
    try:
        document = SchemaLoader().load(source)
        result = generate_modules(document, GeneratorConfig())
    except ReefgenError as e:
        console.print(f'[red]Error:[/red] {escape(e.message)}')
        raise typer.Exit(1)

    print_report(result.report)
    if result.failed:
        console.print(f'[red]{len(result.report.errors())} error(s)[/red] in {source}')
        raise typer.Exit(1)
    console.print(f'[green]No errors[/green] in {source} ({len(result.report.warnings())} warning(s))')


@app.command()
def version() -> None:
    """Show the version of reefgen."""
    from reefgen import __version__

    console.print(f'reefgen version: {__version__}')


if __name__ == '__main__':
    app()
