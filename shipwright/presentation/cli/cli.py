"""
CLI Module

Architectural Intent:
- Command-line interface for Shipwright
- Entry point for all operator interactions
- Delegates to application use cases via composition root
- Supports --verbose/--debug flags for log level control
- Exit code 0 only when a rollout SUCCEEDED (or a dry run/report completed);
  monitor exits 1 when any host is inactive or unhealthy
"""

import argparse
import asyncio
import logging
import signal
import sys
import traceback
from typing import Optional

from shipwright.application.dtos.deployment_dtos import (
    DEFAULT_MONITOR_PATHS,
    MonitorRequest,
    RecoveryRequest,
    RolloutRequest,
    RolloutResponse,
)
from shipwright.application.orchestration.group_lock import CancellationToken
from shipwright.composition_root import ShipwrightContainer, create_container
from shipwright.domain.entities.policy import RetentionPolicy
from shipwright.domain.errors import (
    ConcurrentRolloutError,
    ConfigurationError,
    ShipwrightError,
)
from shipwright.infrastructure.config import InventoryConfig, load_config
from shipwright.infrastructure.logging import configure_logging, parse_level

logger = logging.getLogger(__name__)

_STRATEGY_FOR_COMMAND = {
    "deploy": "full-batch",
    "rolling-update": "serial",
    "canary": "canary",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Shipwright: backup-first rolling deployments with automatic rollback"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to shipwright.json"
    )
    parser.add_argument(
        "--inventory", "-i", default=None, help="Path to the INI inventory"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit structured JSON logs"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    helps = {
        "deploy": "Deploy to every host of a group at once (bounded concurrency)",
        "rolling-update": "Update hosts one at a time, halting on the first failure",
        "canary": "Update a canary wave first, then the rest if it committed",
    }
    for name, text in helps.items():
        sub = subparsers.add_parser(name, help=text)
        sub.add_argument("--group", "-g", required=True, help="Target group")
        sub.add_argument(
            "--artifact", "-a", required=True, help="Release archive (.tar.gz)"
        )
        sub.add_argument(
            "--dry-run", action="store_true", help="Resolve and plan, touch nothing"
        )
        sub.add_argument("--max-concurrency", type=int, help="Hosts in flight at once")
        sub.add_argument("--health-retries", type=int, help="Health probe attempts")
        sub.add_argument(
            "--health-delay", type=float, help="Seconds between health probe attempts"
        )
        sub.add_argument(
            "--no-rollback", action="store_true", help="Leave failed hosts unhealthy"
        )
        sub.add_argument(
            "--rollback-escalation",
            choices=["escalate", "retry-once"],
            help="What to do when rollback verification fails",
        )
        sub.add_argument(
            "--no-sweep", action="store_true", help="Skip the retention sweep afterwards"
        )
        if name == "canary":
            sub.add_argument(
                "--canary-size", type=int, default=None, help="Hosts in the canary wave"
            )

    recover_parser = subparsers.add_parser(
        "recover", help="Disaster recovery: restore a group from an explicit backup"
    )
    recover_parser.add_argument("--group", "-g", required=True, help="Target group")
    recover_parser.add_argument(
        "--hosts", help="Comma-separated subset of the group's hosts"
    )
    source = recover_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--backup-path", help="Local backup archive to restore")
    source.add_argument("--backup-id", help="Backup id from the backup store")

    sweep_parser = subparsers.add_parser(
        "sweep", help="Delete expired backups (newest per host is always kept)"
    )
    sweep_parser.add_argument(
        "--group", "-g", default=None,
        help="Only sweep backups of this group's hosts (default: every host)"
    )
    sweep_parser.add_argument(
        "--max-age-days", type=float, default=None, help="Retention age in days"
    )

    monitor_parser = subparsers.add_parser(
        "monitor", help="Report service state and endpoint health of a group"
    )
    monitor_parser.add_argument("--group", "-g", required=True, help="Target group")
    monitor_parser.add_argument(
        "--endpoints",
        default=",".join(DEFAULT_MONITOR_PATHS),
        help="Comma-separated paths checked after the health path",
    )
    monitor_parser.add_argument("--max-concurrency", type=int, help="Hosts checked at once")
    monitor_parser.add_argument(
        "--timeout", type=float, default=5.0, help="Seconds per command and endpoint"
    )

    locks_parser = subparsers.add_parser(
        "locks", help="List held group/host locks, or release a stale one"
    )
    locks_parser.add_argument(
        "--release", metavar="KEY", help="Remove this lock (e.g. group:web, host:web1)"
    )

    status_parser = subparsers.add_parser(
        "status", help="Show recent deployments and host status"
    )
    status_parser.add_argument("--group", "-g", help="Filter deployments by group")
    status_parser.add_argument(
        "--limit", type=int, default=10, help="Number of deployments to show"
    )

    backups_parser = subparsers.add_parser("backups", help="List stored backups")
    backups_parser.add_argument("--host", help="Only this host")

    return parser


def _rollout_request(args, container: ShipwrightContainer) -> RolloutRequest:
    rollout = container.config.rollout
    policy = rollout.to_policy(
        strategy=_STRATEGY_FOR_COMMAND[args.command],
        canary_size=getattr(args, "canary_size", None),
        max_concurrency=args.max_concurrency,
        health_retries=args.health_retries,
        health_retry_delay=args.health_delay,
        rollback_on_failure=False if args.no_rollback else None,
        rollback_escalation=args.rollback_escalation,
        sweep_after_rollout=False if args.no_sweep else None,
    )
    return RolloutRequest(
        group=args.group,
        artifact=args.artifact,
        policy=policy,
        retention=container.config.retention.to_policy(),
        dry_run=args.dry_run,
    )


def _print_rollout(response: RolloutResponse) -> None:
    plan = response.plan
    if response.dry_run:
        print(f"[*] DRY RUN: {len(plan.hosts)} host(s) in {plan.group}, "
              f"concurrency {plan.concurrency}")
        for index, wave in enumerate(plan.waves, start=1):
            print(f"  wave {index}: {', '.join(wave)}")
        return

    deployment = response.deployment
    for outcome in deployment.outcomes:
        marker = "[+]" if outcome.state == "committed" else "[-]"
        line = f"  {marker} {outcome.host}: {outcome.state}"
        if outcome.cause:
            line += f" ({outcome.failed_step}: {outcome.cause})"
        print(line)
    marker = "[+]" if response.success else "[-]"
    print(f"{marker} Deployment {deployment.deployment_id}: {deployment.result.value}")
    if deployment.aborted_reason:
        print(f"[-] Aborted: {deployment.aborted_reason}")


def _install_interrupt(cancel: CancellationToken) -> None:
    try:
        asyncio.get_running_loop().add_signal_handler(
            signal.SIGINT, cancel.cancel, "interrupted by operator"
        )
    except (NotImplementedError, RuntimeError) as e:
        logger.debug("SIGINT cancellation unavailable, Ctrl+C aborts immediately: %s", e)


async def _run_command(args, container: ShipwrightContainer) -> int:
    if args.command in _STRATEGY_FOR_COMMAND:
        request = _rollout_request(args, container)
        cancel = CancellationToken()
        _install_interrupt(cancel)
        print(f"[*] {args.command}: {request.artifact} -> {request.group} "
              f"({request.policy.strategy.value})")
        response = await container.run_rollout.execute(request, cancel)
        _print_rollout(response)
        return 0 if response.success else 1

    if args.command == "recover":
        hosts = tuple(h.strip() for h in (args.hosts or "").split(",") if h.strip())
        request = RecoveryRequest(
            group=args.group,
            hosts=hosts,
            backup_path=args.backup_path,
            backup_id=args.backup_id,
            policy=container.config.rollout.to_policy(),
        )
        print(f"[*] Disaster recovery of {request.group} from "
              f"{request.backup_path or request.backup_id}...")
        response = await container.disaster_recovery.execute(request)
        for result in response.hosts:
            marker = "[+]" if result.success else "[-]"
            print(f"  {marker} {result.host}: {result.message} "
                  f"(pre-recovery backup: {result.safety_backup_id or 'none'})")
        print(f"{'[+]' if response.success else '[-]'} {response.message}")
        return 0 if response.success else 1

    if args.command == "sweep":
        policy = (
            RetentionPolicy.days(args.max_age_days)
            if args.max_age_days is not None
            else container.config.retention.to_policy()
        )
        report = await container.sweep_retention.execute(args.group, policy)
        print(f"[+] Sweep: deleted {len(report.deleted)}, retained {report.retained}")
        for error in report.errors:
            print(f"[-] {error}")
        return 0

    if args.command == "monitor":
        paths = tuple(p.strip() for p in args.endpoints.split(",") if p.strip())
        request = MonitorRequest(
            group=args.group,
            paths=paths,
            max_concurrency=args.max_concurrency or container.config.rollout.max_concurrency,
            timeout=args.timeout,
        )
        response = await container.monitor_fleet.execute(request)
        for report in response.hosts:
            marker = "[+]" if report.ok else "[-]"
            print(f"  {marker} {report.host}: service {report.service_state}")
            for check in report.endpoints:
                result = "ok" if check.healthy else "FAILED"
                detail = check.status_code if check.status_code is not None else check.error
                print(f"      {check.path}: {result} ({detail or '-'})")
        healthy = sum(1 for r in response.hosts if r.ok)
        print(f"{'[+]' if response.ok else '[-]'} {response.group}: "
              f"{healthy}/{len(response.hosts)} host(s) active and healthy")
        return 0 if response.ok else 1

    if args.command == "locks":
        repository = container.repository
        if args.release:
            if not repository.force_release(args.release):
                print(f"[-] No lock named {args.release}")
                return 1
            print(f"[+] Released {args.release}")
            return 0
        locks = repository.list_locks()
        if not locks:
            print("[*] No locks held.")
        for lock in locks:
            print(f"  {lock['lock_key']} {lock['holder']} "
                  f"(pid {lock['pid']} on {lock['machine']} since {lock['acquired_at']})")
        return 0

    if args.command == "status":
        deployments = container.repository.list_deployments(args.group, args.limit)
        if not deployments:
            print("[*] No deployments recorded.")
        for deployment in deployments:
            committed = len(deployment.hosts_in("committed"))
            print(f"  {deployment.deployment_id} {deployment.started_at:%Y-%m-%d %H:%M} "
                  f"{deployment.group} {deployment.strategy.value} "
                  f"{deployment.result.value} ({committed}/{len(deployment.outcomes)})")
        for row in container.repository.get_host_status():
            print(f"  {row['host']}: {row['state']} / {row['health']} "
                  f"(last deployment: {row['last_deployment_id'] or '-'})")
        return 0

    if args.command == "backups":
        store = container.backup_store
        hosts = [args.host] if args.host else store.hosts()
        for host in hosts:
            for backup in store.list(host):
                print(f"  {backup.backup_id} {backup.host} {backup.kind.value} "
                      f"{backup.created_at:%Y-%m-%d %H:%M} {backup.size_bytes}B")
        return 0

    return 2


async def async_main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging based on flags
    if args.debug:
        configure_logging(level=logging.DEBUG, json_format=args.json_logs)
    elif args.verbose:
        configure_logging(level=logging.INFO, json_format=args.json_logs)
    else:
        configure_logging(level=logging.WARNING, json_format=args.json_logs)

    verbose = args.verbose or args.debug

    if not args.command:
        parser.print_help()
        return 2

    try:
        config = load_config(args.config)
        if not verbose:
            configure_logging(level=parse_level(config.log_level), json_format=args.json_logs)
        if args.inventory:
            config = config.with_overrides(inventory=InventoryConfig(path=args.inventory))
        container = create_container(config)
    except (ConfigurationError, ValueError) as e:
        print(f"[-] Configuration error: {e}")
        return 1

    try:
        return await _run_command(args, container)
    except ConcurrentRolloutError as e:
        print(f"[-] {e}")
        return 1
    except (ConfigurationError, ValueError) as e:
        print(f"[-] Configuration error: {e}")
        if verbose:
            traceback.print_exc()
        return 1
    except ShipwrightError as e:
        print(f"[-] {args.command} failed: {e}")
        if verbose:
            traceback.print_exc()
        return 1
    finally:
        container.close()


def main():
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
