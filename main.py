import argparse
import random
import sys
from typing import Optional

from fuxi.config.settings import ConfigManager, AppConfig, DEFAULT_CONFIG_PATH
from fuxi.utils.logging import StructuredLogger
from fuxi.utils.clock import ManualClock
from fuxi.data.schemas import Sentiment
from fuxi.persistence.feature_store import FeatureStore
from fuxi.coordinator import SessionCoordinator

SIMULATION_STEP_MS = 15_000


class FuxiApp:
    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_manager = ConfigManager()
        self.config: Optional[AppConfig] = None
        self.logger: Optional[StructuredLogger] = None
        self.config_path = config_path

    def initialize(self) -> None:
        try:
            self.config = self.config_manager.load(self.config_path)
            self.logger = StructuredLogger(
                "fuxi.main",
                level=self.config.logging.level,
                fmt=self.config.logging.format
            )
            self.logger.log_config(self.config.to_dict())
            self.logger.info("Fuxi initialized successfully")
        except Exception as e:
            print(f"Failed to initialize Fuxi: {e}")
            sys.exit(1)

    def serve(self, host: str, port: int, reload: bool) -> None:
        import uvicorn

        self.logger.info("Starting API server", host=host, port=port)
        uvicorn.run("api:app", host=host, port=port, reload=reload)

    def validate_catalog(self, path: Optional[str] = None) -> bool:
        path = path or self.config.catalog.path
        with self.logger.operation_context("FuxiApp", "validate_catalog", path=path) as log:
            store = FeatureStore.load(path)
            result = store.validate()
            for warning in result.warnings:
                log.warning(warning)
            for error in result.errors:
                log.error(error)
            log.info("Catalog validated", tracks=len(store), valid=result.is_valid)

        print(f"\nCatalog: {path}")
        print(f"Tracks: {len(store)}")
        print(f"Valid: {'yes' if result.is_valid else 'no'}")
        for error in result.errors:
            print(f"  error: {error}")
        for warning in result.warnings:
            print(f"  warning: {warning}")
        return result.is_valid

    def simulate(self, participants: int, reactions: int, seed: Optional[int]) -> None:
        """Run a session against a manual clock and print what the engine decided."""
        with self.logger.operation_context("FuxiApp", "simulate",
                                           participants=participants, reactions=reactions) as log:
            rng = random.Random(seed)
            clock = ManualClock(start_ms=0, hour=10)
            features = FeatureStore.load(self.config.catalog.path)
            if len(features) == 0:
                raise ValueError("Simulation requires a non-empty catalog")
            coordinator = SessionCoordinator(self.config, features, clock)

            session = coordinator.create_session({'maxParticipants': max(participants, 1)})
            for i in range(participants):
                coordinator.join_session(session.id, f"user{i + 1}", f"profile{i + 1}", f"conn{i + 1}")

            track_ids = features.track_ids()
            sentiments = list(Sentiment)
            current = rng.choice(track_ids)
            coordinator.update_current_track(session.id, {'trackId': current})
            suggestions = []
            for _ in range(reactions):
                clock.advance(SIMULATION_STEP_MS)
                profile = f"profile{rng.randint(1, participants)}"
                outcome = coordinator.record_reaction(session.id, {
                    'trackId': current,
                    'reaction': rng.choice(sentiments).value,
                    'profileId': profile,
                })
                suggestions = outcome.recommendations
                if suggestions and coordinator.get_session(session.id).settings.auto_next:
                    current = suggestions[0].track_id
                    coordinator.update_current_track(session.id, {'trackId': current})

            metrics = coordinator.get_metrics(session.id)
            recommendations = coordinator.get_recommendations(session.id, "profile1")
            confidence = coordinator.recommendation_confidence(session.id, "profile1")
            log.metric("positivity_ratio", metrics.positivity_ratio, tags={"session": session.id})
            log.metric("average_engagement", metrics.average_engagement, tags={"session": session.id})

        self._display_simulation(metrics, recommendations, confidence, features)

    def _display_simulation(self, metrics, recommendations, confidence, features) -> None:
        print("\n" + "=" * 60)
        print("FUXI SESSION SIMULATION")
        print("=" * 60)
        print(f"\nSession: {metrics.session_id}")
        print(f"  Participants: {metrics.participant_count}")
        print(f"  Tracks played: {metrics.tracks_played}")
        print(f"  Reactions: {metrics.total_reactions} "
              f"(+{metrics.positive_reactions} / -{metrics.negative_reactions})")
        print(f"  Positivity ratio: {metrics.positivity_ratio:.2f}")
        print(f"  Average engagement: {metrics.average_engagement:.2f}")
        print(f"\nRecommendations for profile1 (confidence {confidence:.2f}):\n")
        if not recommendations:
            print("No recommendations available.")
            return
        for i, rec in enumerate(recommendations, 1):
            track = features.get(rec.track_id)
            title = track.title if track is not None and track.title else rec.track_id
            reasons = ", ".join(sorted(r.value for r in rec.reasons))
            print(f"{i:2d}. {title}")
            print(f"     Score: {rec.score:.3f} | Reasons: {reasons}")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fuxi - reactive engine for live music-therapy sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to configuration file"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the REST and WebSocket API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    validate_parser = subparsers.add_parser("validate-catalog", help="Validate a track feature catalog")
    validate_parser.add_argument(
        "--catalog",
        help="Catalog JSON or CSV file (defaults to the configured catalog)"
    )

    simulate_parser = subparsers.add_parser("simulate", help="Simulate a session and print its outcome")
    simulate_parser.add_argument(
        "--participants",
        type=int,
        default=3,
        help="Number of listeners"
    )
    simulate_parser.add_argument(
        "--reactions",
        type=int,
        default=20,
        help="Number of reactions to generate"
    )
    simulate_parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for reproducible runs"
    )
    return parser


def main():
    parser = create_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)
    app = FuxiApp(args.config)
    app.initialize()
    try:
        if args.command == "serve":
            app.serve(args.host, args.port, args.reload)
        elif args.command == "validate-catalog":
            if not app.validate_catalog(args.catalog):
                sys.exit(2)
        elif args.command == "simulate":
            if args.participants < 1:
                parser.error("--participants must be at least 1")
            app.simulate(args.participants, args.reactions, args.seed)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
