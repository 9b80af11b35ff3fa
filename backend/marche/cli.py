# Overview: Flask CLI command groups for bootstrap, verification review, and maintenance.

# backend/marche/cli.py
# Operator commands (from backend/, with FLASK_APP=marche):
#
# Database:
# - flask system init-db
#   Create missing tables on a fresh dev database ("flask db upgrade" for real ones).
# - flask system reset-db --yes
#   Local only: wipe every table and recreate the schema.
#
# Verification review:
# - flask verification pending [--kind store] [--status rejected]
#   Profiles in the review queue, with document counts.
# - flask verification decide 12 approve [--note "Documents OK"]
#   Approve or reject a pending profile.
#
# Events:
# - flask events close-past-deadline
#   Close published events whose application deadline has passed (nothing schedules it).
#
# Maintenance:
# - flask maintenance cleanup-sessions --retention-days 30
#   Purge expired/revoked sessions older than the retention window.

import click
from flask.cli import with_appcontext

from .errors import MarcheError
from .extensions import db
from .services import event_service, profile_service, session_service, verification_service
from .services.verification_service import OUTCOME_APPROVE, OUTCOME_REJECT


@click.group('system')
def system_group():
    """Database bootstrap."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@with_appcontext
def reset_db(yes):
    """Drop and recreate every table. Uploaded files on disk are left alone."""
    if not yes:
        click.confirm("WARN Every user, profile, event and application will be deleted. Continue?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Schema recreated; database is empty.")


@click.group('verification')
def verification_group():
    """Profile verification review."""


@verification_group.command('pending')
@click.option('--kind', type=click.Choice(['store', 'organizer']), default=None)
@click.option('--status', default='pending', show_default=True)
@with_appcontext
def list_pending(kind, status):
    """List profiles by verification status (pending by default)."""
    try:
        profiles = verification_service.list_profiles_by_status(status, kind=kind)
    except MarcheError as e:
        raise click.ClickException(e.message)

    if not profiles:
        click.echo(f"No {status} profiles.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Kind':<10} {'Name':<30} {'Submitted':<22} {'Docs'}")
    click.echo("="*80)

    for profile in profiles:
        documents = profile_service.list_profile_documents(profile)
        missing = verification_service.missing_required_documents(profile, documents)
        docs = f"{len(documents)}" + (f" (missing: {', '.join(missing)})" if missing else "")
        submitted = profile.to_dict()["verification_submitted_at"] or "-"
        click.echo(f"{profile.id:<6} {profile.kind:<10} {(profile.name or '-')[:30]:<30} {submitted:<22} {docs}")

    click.echo("="*80 + "\n")


@verification_group.command('decide')
@click.argument('profile_id', type=int)
@click.argument('outcome', type=click.Choice([OUTCOME_APPROVE, OUTCOME_REJECT]))
@click.option('--note', default=None, help='Reason shown to the profile owner')
@with_appcontext
def decide(profile_id, outcome, note):
    """Approve or reject a pending profile."""
    try:
        profile = profile_service.get_profile(profile_id)
        profile = verification_service.decide_verification(profile, outcome, note=note)
    except MarcheError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Profile {profile.id} is now {profile.verification_status} (verified={profile.is_verified}).")


@click.group('events')
def events_group():
    """Event maintenance commands."""


@events_group.command('close-past-deadline')
@with_appcontext
def close_past_deadline():
    """Close every published event whose application deadline has passed."""
    closed = event_service.close_events_past_deadline()
    for event in closed:
        click.echo(f"Closed event {event.id}: {event.title}")
    click.echo(f"Closed {len(closed)} event(s).")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """
    Cleanup expired and revoked sessions.

    Default retention: 30 days.
    """
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(verification_group)
    app.cli.add_command(events_group)
    app.cli.add_command(maintenance_group)
