import logging

from tak_engine.config import CONFIG, configure_logging
from tak_engine.core.notation import encode_game, encode_move, result_token
from tak_engine.core.types import Player
from tak_engine.main import Engine, render_board

logger = logging.getLogger(__name__)


def main(human=Player.WHITE, depth=None, size=None, komi=None):
    """Human plays ``human``, the engine plays the other colour."""
    configure_logging(CONFIG.log_level)
    game = Engine(depth=depth, size=size, komi=komi)

    while not game.state.is_terminal:
        print(render_board(game.state))
        print("----------------------------")

        if game.state.side_to_move is human:
            user_move = input("Enter your move (PTN, e.g. a1, Sc3, 3c3+12; 'undo' or 'quit'): ").strip()
            if user_move == "quit":
                break
            if user_move == "undo":
                # take back the engine reply as well as our own move
                if len(game.state.history) < 2:
                    print("Nothing to undo.")
                else:
                    game.undo_move()
                    game.undo_move()
                continue
            if not game.make_move(user_move):
                print("Illegal move, try again.")
                continue
        else:
            result = game.search.search(game.state, time_budget_ms=CONFIG.search.time_limit_ms)
            move = result.best_move
            print(f"Engine plays: {encode_move(move)} | Eval: {result.score} | Depth: {result.depth}")
            game.state = game.state.apply(move, validate=False)

    print(render_board(game.state))
    print("Game Over")
    print(f"Result: {result_token(game.state) or '*'}")
    logger.debug("Game record:\n%s", encode_game(game.state))
    return game.state


if __name__ == "__main__":
    main()
