from .config import Parameters
from .strategies.circle import CircleStrategy
from .strategies.histogram import HistogramStrategy
from .strategies.template import TemplateStrategy


class StrategyFactory:
    STRATEGIES = {
        "template": TemplateStrategy,
        "circle": CircleStrategy,
        "histogram": HistogramStrategy,
    }

    @staticmethod
    def create(name: str, parameters: Parameters = None):
        key = (name or "").strip().lower()
        try:
            cls = StrategyFactory.STRATEGIES[key]
        except KeyError:
            raise ValueError(
                f"Unknown tracker strategy '{name}', expected one of "
                f"{sorted(StrategyFactory.STRATEGIES)}"
            ) from None
        return cls(parameters or Parameters())

