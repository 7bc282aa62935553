import json
import sys

from services.config.env import get_log_config
from services.config.logging import configure_logging
from services.forecasting.assumptions import BusinessCase
from services.forecasting.engine import calculate
from services.forecasting.errors import InputError
from services.simulation.metrics import extract_metrics, parse_metrics

USAGE = "Usage: python -m services.api.cli <case.json> [--metrics NPV,IRR] [--full]"


def main(argv=None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0].startswith("-"):
        print(USAGE)
        return 2
    path = args.pop(0)
    metrics = None
    full = False
    while args:
        flag = args.pop(0)
        if flag == "--metrics" and args:
            metrics = [m for m in args.pop(0).split(",") if m]
        elif flag == "--full":
            full = True
        else:
            print(USAGE)
            return 2

    configure_logging(get_log_config().level)
    try:
        with open(path) as f:
            bc = BusinessCase.from_dict(json.load(f))
        calc = calculate(bc)
        if full:
            out = calc.to_dict()
        else:
            out = extract_metrics(calc, parse_metrics(metrics)) if metrics else extract_metrics(calc)
    except InputError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(json.dumps({"error": "invalid_input", "message": str(e)}, indent=2), file=sys.stderr)
        return 1
    print(json.dumps(out, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
