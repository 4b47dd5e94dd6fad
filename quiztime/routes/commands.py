import click
from flask.cli import with_appcontext
from quiztime.models import db
from quiztime.services.leaderboard import trim_leaderboard
from quiztime.utils.importer import import_all, import_questions


@click.command('import-questions')
@click.option('--level',
              type=click.Choice(['easy', 'medium', 'hard']),
              default=None,
              help='Level for questions.json entries that carry none.')
@with_appcontext
def import_questions_command(level):
    """Seed the question catalogue from the JSON data directory."""
    try:
        added = import_questions(default_level=level)
        click.echo(f"Imported {added} questions.")
    except Exception as e:
        db.session.rollback()
        click.echo(f"Error importing questions: {str(e)}", err=True)
        raise SystemExit(1)


@click.command('import-legacy')
@click.option('--clear', is_flag=True, help='Delete existing data first.')
@with_appcontext
def import_legacy_command(clear):
    """Import questions, users, history, stats and leaderboard JSON files."""
    if clear:
        click.confirm('This deletes all questions, users, stats and '
                      'leaderboard entries. Continue?', abort=True)
    try:
        summary = import_all(clear=clear)
        for name, count in summary.items():
            click.echo(f"{name}: {count}")
    except Exception as e:
        db.session.rollback()
        click.echo(f"Error importing data: {str(e)}", err=True)
        raise SystemExit(1)


@click.command('leaderboard-trim')
@with_appcontext
def leaderboard_trim_command():
    """Drop leaderboard rows beyond the configured size."""
    removed = trim_leaderboard()
    click.echo(f"Removed {removed} leaderboard entries.")


def register_commands(app):
    app.cli.add_command(import_questions_command)
    app.cli.add_command(import_legacy_command)
    app.cli.add_command(leaderboard_trim_command)
