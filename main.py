# =============================================================================
# main.py - CLI entry point
# =============================================================================

import argparse
import logging
import sys
from pathlib import Path

from assemblers.discovery import DiscoveryAssembler
from assemblers.reconciliation import ReconciliationAssembler
from core.account_actions import AccountActionExecutor
from core.ad_client import ActiveDirectoryClient
from core.exceptions import ConfigurationError
from core.graph_client import GraphClient
from core.messages import MessageBuilder
from core.models import AssemblyMode, RunOutput
from core.notifier import Notifier
from core.orchestrator import RemediationOrchestrator
from core.owner_resolver import OwnerResolver
from utils.config import Config
from utils.report_writer import ReportWriter, load_snapshot

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2


def setup_logging(level: str = "INFO") -> str:
    """Setup logging configuration with both console and file output"""
    from datetime import datetime

    # Create logs directory if it doesn't exist
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    # Generate date-stamped filename
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = log_dir / f"privileged_account_cleanup_{timestamp}.log"

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Request-level chatter from the HTTP and auth libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("ldap3").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized - Console: {level.upper()}, File: DEBUG")
    logger.info(f"Log file: {log_filename}")

    return str(log_filename)


def build_orchestrator(mode: AssemblyMode, args, config: Config, ad_client: ActiveDirectoryClient,
                       graph_client: GraphClient, rows=None) -> RemediationOrchestrator:
    """Wire collaborators for the requested mode"""
    settings = config.remediation_settings(
        warn_days=args.warn_days,
        disable_days=args.disable_days,
        delete_days=args.delete_days,
        deletion_enabled=args.enable_deletion,
        dry_run=args.dry_run,
    )
    prefix_policy = config.prefix_policy()

    assembler_map = {
        AssemblyMode.DISCOVERY: lambda: DiscoveryAssembler(
            ad_client, graph_client, prefix_policy, config.search_base
        ),
        AssemblyMode.RECONCILIATION: lambda: ReconciliationAssembler(
            rows or [], ad_client, graph_client, prefix_policy
        ),
    }

    return RemediationOrchestrator(
        assembler=assembler_map[mode](),
        owner_resolver=OwnerResolver(ad_client, graph_client, prefix_policy, config.owner_attribute_policy()),
        notifier=Notifier(graph_client, config.notification_sender, config.notification_override_recipient),
        actions=AccountActionExecutor(ad_client, graph_client),
        message_builder=MessageBuilder(settings.disable_days, settings.delete_days, settings.deletion_enabled),
        settings=settings,
    )


def run_remediation(mode: AssemblyMode, args, config: Config, rows=None) -> RunOutput:
    with ActiveDirectoryClient(
            config.ad_server, config.ad_username,
            config.ad_password, config.base_dn,
            owner_attribute=config.ad_owner_attribute
    ) as ad_client, GraphClient(
            config.graph_tenant_id, config.graph_client_id, config.graph_client_secret
    ) as graph_client:
        orchestrator = build_orchestrator(mode, args, config, ad_client, graph_client, rows)
        return orchestrator.run()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Notify, disable and delete inactive privileged AD / Entra ID accounts"
    )
    subparsers = parser.add_subparsers(dest='mode', help='Run mode')

    discover_parser = subparsers.add_parser('discover', help='Query AD and Entra ID for privileged accounts')
    reconcile_parser = subparsers.add_parser('reconcile', help='Process a supplied account list (CSV or Excel)')
    reconcile_parser.add_argument('input_file', help='Input CSV/Excel file, e.g. a previous retry list')
    reconcile_parser.add_argument('--sheet-name', help='Excel sheet name (optional)')

    for sub in (discover_parser, reconcile_parser):
        sub.add_argument('--warn-days', type=int, help='Days inactive before the owner is warned (default 90)')
        sub.add_argument('--disable-days', type=int, help='Days inactive before the account is disabled (default 120)')
        sub.add_argument('--delete-days', type=int, help='Days inactive before the account is deleted (default 180)')
        sub.add_argument('--enable-deletion', action='store_true', help='Actually delete accounts at the delete threshold')
        sub.add_argument('--dry-run', action='store_true', help='Report what would happen without notifying or changing accounts')
        sub.add_argument('--output-dir', default='output', help='Directory for result, retry and summary files')
        sub.add_argument('--no-excel', action='store_true', help='Skip the Excel report')

    parser.add_argument('--env-file', help='Path to a .env file (default: ./.env)')
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    return parser


def main(argv=None) -> int:
    """Main CLI entry point"""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not args.mode:
        parser.print_help()
        return EXIT_CONFIG_ERROR

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    config = Config(args.env_file)
    if not config.validate():
        logger.error(f"Missing required environment variables: {config.get_missing_vars()}")
        return EXIT_CONFIG_ERROR

    rows = None
    if args.mode == 'reconcile':
        if not Path(args.input_file).exists():
            logger.error(f"Input file not found: {args.input_file}")
            return EXIT_CONFIG_ERROR
        try:
            rows = load_snapshot(args.input_file, args.sheet_name or 0)
        except ConfigurationError as e:
            logger.error(e.message)
            return EXIT_CONFIG_ERROR
        mode = AssemblyMode.RECONCILIATION
    else:
        mode = AssemblyMode.DISCOVERY

    try:
        output = run_remediation(mode, args, config, rows)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e.message}")
        return EXIT_CONFIG_ERROR

    ReportWriter(args.output_dir).write(output, excel=not args.no_excel)

    if not output.success:
        logger.error(f"Run failed: {output.error}")
        return EXIT_RUN_FAILED

    logger.info("Run completed successfully")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
