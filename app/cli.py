import argparse
import logging
import sys
import uuid

from app.services.catalog.option_set import cross_product, cross_product_count
from app.services.errors import CatalogError
from app.settings import settings

# 로그 설정
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("app.cli")


def parse_option_arg(raw: str) -> dict:
    """'Color=Red,Blue' → {"name": "Color", "values": ["Red", "Blue"]}"""
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"옵션 형식은 Name=Value1,Value2 이어야 합니다: {raw}")
    name, values = raw.split("=", 1)
    return {"name": name.strip(), "values": [v.strip() for v in values.split(",") if v.strip()]}


def run_reprice_command(args) -> int:
    """머천트 오퍼 정산가 재계산"""
    from app.db import SessionLocal
    from app.services.pricing.offer_pricing import OfferPricingService

    with SessionLocal() as session:
        with session.begin():
            changes = OfferPricingService(session).reprice_merchant_offers(args.merchant_id)
            changed = [c for c in changes if c.changed]
            for c in changed:
                logger.info(
                    f"[CLI] offer={c.offer_id} {c.old_settlement_price_minor} → {c.new_settlement_price_minor} "
                    f"(margin={c.margin.percent}%, rule={c.margin.rule_id})"
                )
    print(f"재계산 {len(changes)}건, 정산가 변경 {len(changed)}건")
    return 0


def run_quote_command(args) -> int:
    """minor 단위 금액을 파트너 현재 환산율로 포인트 환산"""
    from app.db import SessionLocal
    from app.services.pricing.conversion_resolver import ConversionRateResolver

    currency = (args.currency or settings.default_currency_code).upper()
    with SessionLocal() as session:
        resolution = ConversionRateResolver(session).resolve(args.partner_id, currency)

    if not resolution.found:
        logger.error(f"[CLI] 활성 환산 규칙 없음 partner={args.partner_id} currency={currency}")
        return 1

    value = resolution.to_points(args.amount_minor, settings.get_minor_units(currency))
    print(f"{args.amount_minor} ({currency} minor) = {value} points (rate={resolution.rate}, rule={resolution.rule_id})")
    return 0


def run_preview_options_command(args) -> int:
    definition = args.option or []
    total = cross_product_count(definition)
    print(f"조합 수: {total}")
    if total <= settings.option_preview_limit:
        for combo in cross_product(definition):
            print("  " + ", ".join(f"{k}={v}" for k, v in combo.items()))
    else:
        print(f"  (미리보기 한도 {settings.option_preview_limit}개 초과로 생략)")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Rewards Catalog Operations CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    reprice_parser = subparsers.add_parser("reprice", help="Re-price a merchant's offers")
    reprice_parser.add_argument("--merchant-id", type=uuid.UUID, required=True)

    quote_parser = subparsers.add_parser("quote", help="Convert a minor-unit amount to partner points")
    quote_parser.add_argument("--amount-minor", type=int, required=True)
    quote_parser.add_argument("--partner-id", type=uuid.UUID, required=True)
    quote_parser.add_argument("--currency", default=None)

    preview_parser = subparsers.add_parser("preview-options", help="Preview the option cross product")
    preview_parser.add_argument("--option", type=parse_option_arg, action="append", help='e.g. "Color=Red,Blue"')

    args = parser.parse_args(argv)

    commands = {
        "reprice": run_reprice_command,
        "quote": run_quote_command,
        "preview-options": run_preview_options_command,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except CatalogError as e:
        logger.error(f"[CLI] {e.error_code}: {e.message}")
        return 1
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
