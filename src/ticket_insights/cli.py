"""CLI entrypoint for the ticket insights pipeline."""

import argparse
import json
import logging
import sys
from pathlib import Path

from ticket_insights import __version__
from ticket_insights.config import Settings
from ticket_insights.io import (
    JsonlTicketStore,
    TicketDatasetError,
    TicketStoreError,
    ensure_directory,
    load_tickets_jsonl,
    new_run_id,
    save_json,
    save_jsonl,
    validate_tickets_jsonl,
)
from ticket_insights.mock_data import generate_mock_tickets, write_mock_tickets
from ticket_insights.models import ModelInvocationError, OpenAIModelInvoker
from ticket_insights.observability import (
    DiagnosticsBuffer,
    get_agent_metrics_store,
    get_tracing_status,
    init_diagnostics_buffer,
)
from ticket_insights.pipeline import (
    AllChunksFailedError,
    AllDuplicatesError,
    BusinessContext,
    PhaseExecutionError,
    UnparseableResponseError,
    generate_records,
    run_agentic_pipeline,
    run_batch_analysis,
    run_coaching_insights,
    run_multi_agent,
    run_risk_analysis,
    run_ticket_clustering,
)
from ticket_insights.pipeline.agents import DEFAULT_GOAL
from ticket_insights.pipeline.generation import DEFAULT_SCENARIO

logger = logging.getLogger(__name__)

EXIT_INPUT_ERROR = 1
EXIT_PIPELINE_ERROR = 2

_FATAL_PIPELINE_ERRORS = (
    AllChunksFailedError,
    AllDuplicatesError,
    ModelInvocationError,
    PhaseExecutionError,
    UnparseableResponseError,
)


def _add_input_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--input",
        type=str,
        default=None,
        help="Ticket JSONL path (default: settings input_tickets_path).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ticket-insights",
        description="LLM-driven analysis of customer support tickets",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to YAML config file (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level.",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("info", help="Show current configuration")

    validate_parser = sub.add_parser(
        "validate-input",
        help="Validate a ticket JSONL file against the input contract.",
    )
    _add_input_argument(validate_parser)
    validate_parser.add_argument(
        "--max-errors",
        type=int,
        default=100,
        help="Maximum number of errors to keep in the report.",
    )
    validate_parser.add_argument(
        "--report-json",
        type=str,
        default=None,
        help="Optional path to write the full validation report as JSON.",
    )

    analyze_parser = sub.add_parser("analyze", help="Sentiment and category for every ticket.")
    _add_input_argument(analyze_parser)
    analyze_parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Override tickets per model call.",
    )

    coach_parser = sub.add_parser("coach", help="Per-agent coaching insights.")
    _add_input_argument(coach_parser)

    cluster_parser = sub.add_parser("cluster", help="Group tickets into thematic clusters.")
    _add_input_argument(cluster_parser)

    risks_parser = sub.add_parser(
        "risks", help="At-risk tickets, predicted SLA breaches and documentation gaps."
    )
    _add_input_argument(risks_parser)

    agentic_parser = sub.add_parser("agentic", help="Run the five-phase analysis pipeline.")
    _add_input_argument(agentic_parser)
    agentic_parser.add_argument(
        "--priority", action="append", default=[], help="Business priority (repeatable)."
    )
    agentic_parser.add_argument(
        "--goal", action="append", default=[], help="Business goal (repeatable)."
    )
    agentic_parser.add_argument(
        "--constraint", action="append", default=[], help="Business constraint (repeatable)."
    )
    agentic_parser.add_argument(
        "--stakeholder", action="append", default=[], help="Stakeholder (repeatable)."
    )
    agentic_parser.add_argument("--timeline", type=str, default="", help="Decision timeline.")

    multi_parser = sub.add_parser("multi-agent", help="Run the specialist agent team.")
    _add_input_argument(multi_parser)
    multi_parser.add_argument("--goal", type=str, default=DEFAULT_GOAL, help="Analysis goal.")

    generate_parser = sub.add_parser(
        "generate",
        help="Generate tickets with the model and commit new ones to the tenant ledger.",
    )
    generate_parser.add_argument("--tenant", type=str, required=True, help="Tenant identifier.")
    generate_parser.add_argument("--count", type=int, required=True, help="Tickets to request.")
    generate_parser.add_argument(
        "--scenario", type=str, default=DEFAULT_SCENARIO, help="Business scenario to simulate."
    )

    mock_parser = sub.add_parser("mock-data", help="Write deterministic offline mock tickets.")
    mock_parser.add_argument("--count", type=int, default=240, help="Number of tickets.")
    mock_parser.add_argument("--seed", type=int, default=7, help="Deterministic seed.")
    mock_parser.add_argument("--start-id", type=int, default=1, help="First ticket id.")
    mock_parser.add_argument(
        "--output",
        type=str,
        default="data/mock/tickets.jsonl",
        help="Output JSONL path.",
    )

    return parser


def cmd_info(settings: Settings) -> None:
    tracing = get_tracing_status()

    print(f"ticket-insights v{__version__}")
    print(f"  OpenAI model:       {settings.openai_model}")
    print(f"  Effective model:    {settings.resolved_openai_model()}")
    print(f"  OpenAI base URL:    {settings.resolved_openai_base_url() or '(default OpenAI)'}")
    print(f"  API key set:        {bool(settings.resolved_openai_api_key())}")
    print(f"  OpenAI temp:        {settings.openai_temperature}")
    print(f"  Request timeout:    {settings.request_timeout_seconds}s")
    print(f"  Max attempts:       {settings.client_max_attempts}")
    print(f"  Backoff seconds:    {settings.client_backoff_seconds}")
    print(f"  Backoff jitter:     {settings.client_backoff_jitter_seconds}")
    print(f"  Chunk size:         {settings.chunk_size}")
    print(f"  Chunk concurrency:  {settings.chunk_max_concurrency}")
    print(f"  Pipeline deadline:  {settings.pipeline_deadline_seconds}")
    print(f"  Discovery sample:   {settings.discovery_sample_size}")
    print(f"  Coaching limit:     {settings.coaching_ticket_limit}")
    print(f"  Coaching batch:     {settings.coaching_batch_size}")
    print(f"  Cluster batch:      {settings.cluster_batch_size}")
    print(f"  Risk chunk size:    {settings.risk_chunk_size}")
    for agent_name in sorted(settings.agent_models):
        print(f"  Agent model {agent_name + ':':<12} {settings.model_for_agent(agent_name)}")
    print(f"  LangSmith tracing:  {tracing.enabled}")
    print(f"  LangSmith project:  {tracing.project or '(not set)'}")
    print(f"  LangSmith key set:  {tracing.api_key_present}")
    print(f"  Input file:         {settings.input_tickets_path}")
    print(f"  Data dir:           {settings.data_dir}")
    print(f"  Output dir:         {settings.output_dir}")


def _build_invoker(settings: Settings) -> OpenAIModelInvoker:
    api_key = settings.resolved_openai_api_key()
    if not api_key:
        print("No API key configured (set OPENAI_API_KEY or AZURE_OPENAI_API_KEY).")
        sys.exit(EXIT_INPUT_ERROR)
    return OpenAIModelInvoker(
        api_key=api_key,
        model=settings.resolved_openai_model(),
        base_url=settings.resolved_openai_base_url() or None,
        temperature=settings.openai_temperature,
    )


def _load_input(settings: Settings, args: argparse.Namespace) -> list:
    input_path = args.input or str(settings.input_tickets_path)
    try:
        tickets = load_tickets_jsonl(input_path)
    except TicketDatasetError as exc:
        print(f"Input error: {exc}")
        sys.exit(EXIT_INPUT_ERROR)
    print(f"Loaded {len(tickets)} tickets from {input_path}")
    return tickets


def _run_dir(settings: Settings) -> Path:
    return ensure_directory(Path(settings.output_dir) / new_run_id())


def _write_artifacts(
    run_dir: Path,
    name: str,
    payload: object,
    diagnostics: DiagnosticsBuffer,
) -> None:
    result_path = save_json(run_dir / name, payload)
    diagnostics_path = save_jsonl(
        run_dir / "diagnostics.jsonl", [entry.to_dict() for entry in diagnostics.snapshot()]
    )
    print(f"  Result:      {result_path}")
    print(f"  Diagnostics: {diagnostics_path}")


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=True, default=str))


def cmd_validate_input(settings: Settings, args: argparse.Namespace) -> None:
    """Validate ticket input format and print a report."""

    input_path = args.input or str(settings.input_tickets_path)
    try:
        report = validate_tickets_jsonl(input_path, max_errors=args.max_errors)
    except TicketDatasetError as exc:
        print(f"Input validation failed: {exc}")
        sys.exit(EXIT_INPUT_ERROR)
    except ValueError as exc:
        print(f"Input validation configuration error: {exc}")
        sys.exit(EXIT_INPUT_ERROR)

    print("Input validation complete.")
    print(f"  Schema version:  {report.schema_version}")
    print(f"  Input path:      {report.input_path}")
    print(f"  Total lines:     {report.total_lines}")
    print(f"  Valid tickets:   {report.valid_ticket_count}")
    print(f"  Invalid lines:   {report.error_count}")
    print(f"  Duplicate IDs:   {report.duplicate_id_count}")
    print(f"  Agents:          {report.summary.agent_count}")
    print(f"  SLA breach rate: {report.summary.sla_breach_rate:.1%}")

    if args.report_json:
        report_path = save_json(args.report_json, report.to_dict())
        print(f"  Report JSON:     {report_path}")

    if report.is_valid:
        print("Validation passed.")
        return

    print("Validation failed: fix input errors before running the pipeline.")
    for item in report.errors[:5]:
        print(f"    - line {item.line_number} [{item.code}] {item.message}")
    if report.dropped_error_count > 0:
        print(f"    - ... {report.dropped_error_count} additional errors omitted.")
    sys.exit(EXIT_INPUT_ERROR)


def cmd_analyze(
    settings: Settings, args: argparse.Namespace, diagnostics: DiagnosticsBuffer
) -> None:
    tickets = _load_input(settings, args)
    result = run_batch_analysis(
        tickets,
        _build_invoker(settings),
        settings,
        chunk_size=args.chunk_size,
        diagnostics=diagnostics,
    )
    print(
        f"Analyzed {len(result.analyses)}/{len(tickets)} tickets "
        f"({len(result.failed_chunk_indices)} failed chunk(s), "
        f"{len(result.missing_ids)} missing id(s))."
    )
    for warning in result.warnings:
        print(f"  WARNING: {warning}")
    _write_artifacts(_run_dir(settings), "analysis.json", result, diagnostics)


def cmd_coach(settings: Settings, args: argparse.Namespace, diagnostics: DiagnosticsBuffer) -> None:
    tickets = _load_input(settings, args)
    result = run_coaching_insights(
        tickets, _build_invoker(settings), settings, diagnostics=diagnostics
    )
    print(
        f"Produced {len(result.insights)} coaching insight(s) for {result.agent_count} agent(s) "
        f"from {result.sampled_ticket_count} ticket(s)."
    )
    _write_artifacts(_run_dir(settings), "coaching.json", result, diagnostics)


def cmd_cluster(
    settings: Settings, args: argparse.Namespace, diagnostics: DiagnosticsBuffer
) -> None:
    tickets = _load_input(settings, args)
    result = run_ticket_clustering(
        tickets, _build_invoker(settings), settings, diagnostics=diagnostics
    )
    print(
        f"Found {len(result.clusters)} cluster(s) in {result.sampled_ticket_count} ticket(s)."
    )
    for cluster in result.clusters:
        print(f"  {cluster.cluster_id:>3}. {cluster.theme} ({len(cluster.ticket_ids)} tickets)")
    for warning in result.warnings:
        print(f"  WARNING: {warning}")
    _write_artifacts(_run_dir(settings), "clusters.json", result, diagnostics)


def cmd_risks(settings: Settings, args: argparse.Namespace, diagnostics: DiagnosticsBuffer) -> None:
    tickets = _load_input(settings, args)
    result = run_risk_analysis(tickets, _build_invoker(settings), settings, diagnostics=diagnostics)
    print(
        f"Flagged {len(result.at_risk_tickets)} at-risk ticket(s), "
        f"{len(result.predicted_sla_breaches)} predicted SLA breach(es) and "
        f"{len(result.documentation_opportunities)} documentation opportunity(ies)."
    )
    for warning in result.warnings:
        print(f"  WARNING: {warning}")
    _write_artifacts(_run_dir(settings), "risks.json", result, diagnostics)


def cmd_agentic(
    settings: Settings, args: argparse.Namespace, diagnostics: DiagnosticsBuffer
) -> None:
    tickets = _load_input(settings, args)
    business_context = BusinessContext(
        priorities=tuple(args.priority),
        constraints=tuple(args.constraint),
        goals=tuple(args.goal),
        stakeholders=tuple(args.stakeholder),
        timeline=args.timeline,
    )
    result = run_agentic_pipeline(
        tickets,
        _build_invoker(settings),
        settings,
        business_context=business_context,
        diagnostics=diagnostics,
    )
    print(f"Completed phases: {', '.join(result.completed_phases)}")
    print(f"Confidence: {result.confidence:.2f}")
    print(result.synthesis.narrative_insight)
    _write_artifacts(_run_dir(settings), "agentic.json", result, diagnostics)


def cmd_multi_agent(
    settings: Settings, args: argparse.Namespace, diagnostics: DiagnosticsBuffer
) -> None:
    tickets = _load_input(settings, args)
    metrics_store = get_agent_metrics_store(settings.metrics_buffer_size)
    result = run_multi_agent(
        tickets,
        _build_invoker(settings),
        settings,
        goal=args.goal,
        metrics_store=metrics_store,
        diagnostics=diagnostics,
    )
    for name, agent_result in result.results.items():
        status = "ok" if agent_result.success else "FAILED"
        print(f"  {name:<12} {status:<7} {agent_result.duration_ms:.0f} ms ({agent_result.model})")
    for warning in result.warnings:
        print(f"  WARNING: {warning}")
    _write_artifacts(_run_dir(settings), "multi_agent.json", result, diagnostics)
    _print_json({"agent_metrics": metrics_store.summary()})


def cmd_generate(
    settings: Settings, args: argparse.Namespace, diagnostics: DiagnosticsBuffer
) -> None:
    store = JsonlTicketStore(Path(settings.data_dir) / "ledger")
    try:
        result = generate_records(
            args.count,
            args.tenant,
            _build_invoker(settings),
            settings,
            store,
            scenario=args.scenario,
            diagnostics=diagnostics,
        )
    except _FATAL_PIPELINE_ERRORS:
        raise
    except (TicketStoreError, ValueError) as exc:
        print(f"Generation input error: {exc}")
        sys.exit(EXIT_INPUT_ERROR)
    print(
        f"Committed {len(result.committed)} ticket(s) for tenant {result.tenant} "
        f"(dropped {result.dropped_count})."
    )
    _print_json(result.to_dict())


def cmd_mock_data(args: argparse.Namespace) -> None:
    try:
        tickets = generate_mock_tickets(count=args.count, seed=args.seed, start_id=args.start_id)
    except ValueError as exc:
        print(f"Mock data error: {exc}")
        sys.exit(EXIT_INPUT_ERROR)
    out_path = write_mock_tickets(args.output, tickets)
    print(f"Generated {len(tickets)} mock tickets at {out_path}")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_yaml(args.config)
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    diagnostics = init_diagnostics_buffer(settings.diagnostics_buffer_size)

    commands = {
        "analyze": cmd_analyze,
        "coach": cmd_coach,
        "cluster": cmd_cluster,
        "risks": cmd_risks,
        "agentic": cmd_agentic,
        "multi-agent": cmd_multi_agent,
        "generate": cmd_generate,
    }

    if args.command == "info":
        cmd_info(settings)
    elif args.command == "validate-input":
        cmd_validate_input(settings, args)
    elif args.command == "mock-data":
        cmd_mock_data(args)
    elif args.command in commands:
        try:
            commands[args.command](settings, args, diagnostics)
        except _FATAL_PIPELINE_ERRORS as exc:
            logger.error("%s failed: %s", args.command, exc)
            print(f"Pipeline failed: {exc}")
            sys.exit(EXIT_PIPELINE_ERROR)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
