"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-admin: Create a back-office admin
"""

import click
import re
from jewelbox.database import get_database, get_session
from jewelbox.models import Admin


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables first')
    def init_db(drop):
        """Create database tables."""
        db = get_database()
        if drop:
            click.confirm('This deletes all data. Continue?', abort=True)
            db.drop_all()
            click.echo('Dropped all tables.')
        db.create_all()
        click.echo(click.style('Database initialised.', fg='green'))

    @app.cli.command('create-admin')
    @click.option('--email', prompt=True, help='Admin email address')
    @click.option('--name', default='Admin', help='Display name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
    def create_admin(email, name, password):
        """Create a new admin user for the back office."""
        email = email.strip().lower()

        # Validate email format
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('Invalid email. Use the format user@example.com', fg='red'))
            return

        if len(password) < 6:
            click.echo(click.style('Password must be at least 6 characters.', fg='red'))
            return

        db_session = get_session()
        if db_session.query(Admin).filter_by(email=email).first():
            click.echo(click.style(f'An admin with email {email} already exists.', fg='red'))
            return

        try:
            admin = Admin(email=email, name=name)
            admin.set_password(password)
            db_session.add(admin)
            db_session.commit()

            click.echo(click.style('\nAdmin created.', fg='green', bold=True))
            click.echo(f'   Email: {email}')
            click.echo(f'   ID: {admin.id}')

        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'Could not create admin: {str(e)}', fg='red'))
