import argparse

from src.config.logger_config import configure_logging, logger
from src.config.settings import get_settings
from src.wiki_import.domain.errors import ImportPipelineError
from src.wiki_import.domain.models import ImportRequest
from src.wiki_import.import_article import run_import


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m src.wiki_import", description="Import a Wikipedia article.")
    parser.add_argument("--workspace", required=True, help="target workspace id")
    parser.add_argument("--user", default="cli", help="acting user id")
    parser.add_argument("--title", default="", help="page title or Wikipedia URL")
    parser.add_argument("--page-id", default="", help="page id in --lang")
    parser.add_argument("--lang", default="", help="preferred source language")
    parser.add_argument("--target-lang", default="", help="output language")
    parser.add_argument("--entity-type", default="concept")
    parser.add_argument("--publish", action="store_true")
    parser.add_argument("--no-llm", action="store_true", help="skip LLM synthesis")
    parser.add_argument("--no-aggregate", action="store_true", help="use only the resolved page as source")
    parser.add_argument("--no-media", action="store_true")
    parser.add_argument("--provider", default="", help="gemini_ai, gemini_vertex, codex_cli or openrouter")
    parser.add_argument("--model", default="")
    parser.add_argument("--prompt-template", default="", help="prompt template id")
    return parser


def request_from_args(args: argparse.Namespace) -> ImportRequest:
    settings = get_settings()
    return ImportRequest(
        workspace_id=args.workspace,
        user_id=args.user,
        lang=args.lang,
        page_id=args.page_id,
        title=args.title,
        entity_type=args.entity_type,
        publish=args.publish,
        target_lang=args.target_lang,
        use_llm=settings.use_llm and not args.no_llm,
        aggregate_langs=settings.aggregate_langs and not args.no_aggregate,
        llm_provider=args.provider,
        llm_model=args.model,
        prompt_template_id=args.prompt_template,
        import_media=settings.import_media and not args.no_media,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_dir, settings.log_level)
    try:
        result = run_import(request_from_args(args), settings=settings)
    except ImportPipelineError as exc:
        logger.error("Import failed ({}): {}", exc.status_code, exc.message)
        return 1
    print(result)
    return 0


# python -m src.wiki_import --workspace <id> --title "<page>"
if __name__ == "__main__":
    raise SystemExit(main())
