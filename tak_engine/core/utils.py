from tak_engine.core.notation import encode_move


def format_info(d, score, nodes, elapsed, pv_moves, win_threshold, win_score):
    pv_str = " ".join(encode_move(m) for m in pv_moves)
    nps = int(nodes * 1000 / elapsed) if elapsed > 0 else 0

    if abs(score) >= win_threshold:
        plies = win_score - abs(score)
        score_str = f"win {plies}" if score > 0 else f"loss {plies}"
    else:
        score_str = f"score {score}"

    return f"info depth {d} {score_str} nodes {nodes} nps {nps} time {int(elapsed)} pv {pv_str}"


def allot_time_ms(ply, time_remaining_ms, increment_ms=0, cap_ms=30000):
    """Per-move budget drawn from a game clock."""
    base = 1000 if ply < 6 else 3000
    remaining_moves = max(20, ply) + ply // 3
    bank = 0 if ply < 6 else time_remaining_ms // remaining_moves
    budget = min(base + bank + increment_ms, cap_ms)
    # never plan to use more than the clock actually holds
    if time_remaining_ms > 0:
        budget = min(budget, max(1, time_remaining_ms // 2 + increment_ms))
    return budget
