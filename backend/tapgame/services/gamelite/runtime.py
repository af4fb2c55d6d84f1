from flask import current_app

from .bus import LiveEventBus
from .classifier import TapClassifier
from .cleanup import ExitSessionCleaner
from .config import JsonConfigStore, RuleConfig
from .kiosk import KioskStream
from .redemption import RedemptionEngine
from .scoring import ScoringEngine


class GameLite:
    """The engine components for one app, sharing a RuleConfig and a bus."""

    def __init__(self, config: RuleConfig, bus: LiveEventBus, exit_label: str = 'EXITOUT', logger=None,
                 kiosk_heartbeat_sec: float = 20, kiosk_queue_size: int = 100):
        self.config = config
        self.bus = bus
        self.logger = logger
        self.kiosk_heartbeat_sec = kiosk_heartbeat_sec
        self.kiosk_queue_size = kiosk_queue_size
        self.classifier = TapClassifier(config, exit_label)
        self.cleaner = ExitSessionCleaner(exit_label, logger)
        self.scoring = ScoringEngine(config, self.classifier, self.cleaner, bus, logger)
        self.redemption = RedemptionEngine(config, logger)

    def open_kiosk_stream(self, cluster: str) -> KioskStream:
        return KioskStream(
            self.bus,
            cluster,
            heartbeat_sec=self.kiosk_heartbeat_sec,
            max_queue=self.kiosk_queue_size,
            logger=self.logger,
        )


def init_gamelite(flask_app) -> GameLite:
    cfg = flask_app.config
    path = cfg.get('GAMELITE_CONFIG_FILE')
    store = JsonConfigStore(path) if path else None
    rule_config = RuleConfig(store=store, logger=flask_app.logger)
    rule_config.load()

    gamelite = GameLite(
        rule_config,
        LiveEventBus(flask_app.logger),
        exit_label=cfg.get('EXIT_LABEL', 'EXITOUT'),
        logger=flask_app.logger,
        kiosk_heartbeat_sec=float(cfg.get('KIOSK_HEARTBEAT_SEC', 20)),
        kiosk_queue_size=int(cfg.get('KIOSK_QUEUE_SIZE', 100)),
    )
    flask_app.extensions['gamelite'] = gamelite
    return gamelite


def get_gamelite() -> GameLite:
    return current_app.extensions['gamelite']
