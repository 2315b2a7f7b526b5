"""
Flask CLI commands for billing operations.

Commands:
- flask init-db: Create the database schema
- flask roll-over-cycles: Close expired cycles and open the next ones
- flask start-trial: Start the trial cycle of a tenant
"""

from datetime import date

import click

from tasador.database import get_session, create_schema
from tasador.exceptions import SaasError
from tasador.services.subscription_service import roll_over_cycles, create_trial_subscription
from tasador.utils.dates import as_date


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        create_schema(app)
        click.echo(click.style('✅ Esquema creado.', fg='green'))

    @app.cli.command('roll-over-cycles')
    @click.option('--today', default=None, help='Fecha de referencia AAAA-MM-DD (default: hoy)')
    def roll_over_cycles_command(today):
        """Close cycles that ended before today and start the next ones."""
        db_session = get_session()
        reference = as_date(today) or date.today()

        try:
            created = roll_over_cycles(
                db_session,
                reference,
                tax_rate=app.config['IVA_RATE'],
                currency=app.config['BILLING_CURRENCY'],
                default_cycle_days=app.config['DEFAULT_CYCLE_DAYS']
            )
            db_session.commit()
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error en el cierre de ciclos: {str(e)}', fg='red'))
            raise click.exceptions.Exit(1)

        click.echo(click.style(f'✅ {len(created)} ciclo(s) nuevo(s) al {reference.isoformat()}', fg='green'))
        for cycle in created:
            click.echo(f'   {cycle.tenant_id}: {cycle.cycle_start} → {cycle.cycle_end} (plan {cycle.plan_id})')

    @app.cli.command('start-trial')
    @click.argument('tenant_id')
    def start_trial_command(tenant_id):
        """Start the trial cycle of a tenant."""
        db_session = get_session()
        try:
            cycle = create_trial_subscription(
                db_session,
                tenant_id,
                date.today(),
                trial_days=app.config['TRIAL_DAYS']
            )
            db_session.commit()
        except SaasError as e:
            db_session.rollback()
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise click.exceptions.Exit(1)

        click.echo(click.style(f'✅ Prueba activa hasta {cycle.cycle_end.isoformat()}', fg='green'))
