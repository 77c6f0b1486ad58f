import logging
from datetime import datetime, timedelta, timezone

from .catalog import Catalog
from .models import Game, Tournament

logger = logging.getLogger(__name__)

GAMES = [
    ("Free Fire", "https://freefiremobile-a.akamaihd.net/ffwebsite/images/freefire32-2.png"),
    ("PUBG Mobile", "https://w7.pngwing.com/pngs/944/476/png-transparent-playerunknown-s-battlegrounds-pubg-mobile-fortnite-battle-royale-game-android-game-angle-game-rectangle-thumbnail.png"),
    ("Call of Duty", "https://www.callofduty.com/content/dam/atvi/callofduty/cod-touchui/blog/hero/mw-wz/WZ-Season-Three-Announce-TOUT.jpg"),
    ("Fortnite", "https://cdn2.unrealengine.com/24br-s24-egs-launcher-pdp-2560x1440-2560x1440-2a7353b5a438.jpg"),
]

# (title, game name, description, starts in, runs for, prize pool, entry fee,
#  max players, status, type, featured, image url)
TOURNAMENTS = [
    ("Free Fire Pro League", "Free Fire", "Battle for glory in the Free Fire Pro League",
     timedelta(hours=-1), timedelta(hours=3), 5000, 100, 100, "live", "solo", True,
     "https://img.fresherslive.com/latestnews/images/articles/origin/2023/07/28/free-fire-max-obm-rush-rush-1-tournament-register-online-64c3a4c4f36c1-1690548420.jpg"),
    ("PUBG Mobile Cup", "PUBG Mobile", "Compete in the PUBG Mobile Cup tournament",
     timedelta(minutes=-30), timedelta(minutes=75), 10000, 50, 100, "live", "squad", True,
     "https://cdn.oneesports.gg/cdn-data/2022/05/PUBGM_PMPL_2022_Spring_SEA.jpg"),
    ("Call of Duty Championship", "Call of Duty", "The ultimate Call of Duty showdown",
     timedelta(days=2), timedelta(hours=3), 15000, 200, 64, "upcoming", "team", False,
     "https://www.callofduty.com/content/dam/atvi/callofduty/cod-touchui/championships/2022/desktop/COD_CWL-Desktop_Championships_Overview_HERO-BANNER.jpg"),
    ("Fortnite Beginners Cup", "Fortnite", "The perfect tournament for Fortnite beginners",
     timedelta(days=3), timedelta(hours=4), 2000, 0, 50, "upcoming", "solo", False,
     "https://cdn2.unrealengine.com/fortnite-competitive-update-chapter-2-season-6-1920x1080-dc8c70a98462.jpg"),
    ("Free Fire World Series", "Free Fire", "The biggest Free Fire tournament of the year",
     timedelta(days=1), timedelta(hours=5), 25000, 100, 100, "upcoming", "solo", True,
     "https://staticg.sportskeeda.com/editor/2023/11/aeec5-17008069242986-1920.jpg"),
    ("Call of Duty Practice Match", "Call of Duty", "Practice your skills in this free tournament",
     timedelta(days=1), timedelta(hours=2), 500, 0, 50, "upcoming", "solo", False,
     "https://assets.xboxservices.com/assets/15/02/1502c04d-c508-4364-ae47-53bca9dabba2.jpg"),
]


def seed_reference_data(catalog: Catalog, now: datetime = None) -> bool:
    """Load sample games and tournaments into an empty database.

    Returns False when reference data already exists. Player counts start at
    zero; they only ever grow through registrations.
    """
    if Game.query.first() is not None or Tournament.query.first() is not None:
        logger.info("Reference data already present, skipping seed")
        return False

    now = now or datetime.now(timezone.utc)
    games = {name: catalog.create_game(name, image_url) for name, image_url in GAMES}

    for (title, game_name, description, starts_in, duration, prize_pool,
         entry_fee, max_players, status, tournament_type, featured, image_url) in TOURNAMENTS:
        catalog.create_tournament(
            title=title,
            game_id=games[game_name].id,
            description=description,
            start_time=now + starts_in,
            end_time=now + starts_in + duration,
            prize_pool=prize_pool,
            entry_fee=entry_fee,
            max_players=max_players,
            status=status,
            tournament_type=tournament_type,
            featured=featured,
            image_url=image_url
        )

    logger.info(f"Seeded {len(GAMES)} games and {len(TOURNAMENTS)} tournaments")
    return True
