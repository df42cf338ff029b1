from arena.views.game_handlers import sync_game_progress as sync_game_progress
from arena.views.identity_handlers import attach_wallet as attach_wallet
from arena.views.identity_handlers import verify_world_id as verify_world_id
from arena.views.payment_handlers import (
    confirm_payment as confirm_payment,
)
from arena.views.payment_handlers import (
    initiate_payment as initiate_payment,
)
from arena.views.player_handlers import export_player_data as export_player_data
from arena.views.player_handlers import player_stats as player_stats
from arena.views.tournament_handlers import (
    create_tournament as create_tournament,
)
from arena.views.tournament_handlers import (
    get_tournament as get_tournament,
)
from arena.views.tournament_handlers import (
    global_leaderboard as global_leaderboard,
)
from arena.views.tournament_handlers import (
    join_tournament as join_tournament,
)
from arena.views.tournament_handlers import (
    list_tournaments as list_tournaments,
)
from arena.views.tournament_handlers import (
    tournament_leaderboard as tournament_leaderboard,
)
