from typing import Dict, List, Optional, Sequence


def calculate_player_score(true_order: Sequence[str], ranking: Sequence[Optional[str]]) -> int:
    """Penalty for one player's ranking; lower is better.

    Each item costs the distance between where the player slotted it and its
    true position. An item that was never placed counts as guessed last.
    """
    last = len(true_order) - 1
    slots = list(ranking or [])
    points = 0
    for actual_index, item in enumerate(true_order):
        guessed_index = slots.index(item) if item in slots else last
        points += abs(guessed_index - actual_index)
    return points


def build_scoreboard(true_order: Sequence[str], players: Sequence[dict]) -> List[dict]:
    """Players sorted by penalty, ascending. Tied players share a rank."""
    entries = [
        {
            'id': p.get('id'),
            'name': p.get('name'),
            'points': calculate_player_score(true_order, p.get('ranking') or []),
        }
        for p in players
    ]
    entries.sort(key=lambda e: e['points'])
    previous = None
    for position, entry in enumerate(entries, start=1):
        if previous is not None and entry['points'] == previous['points']:
            entry['rank'] = previous['rank']
        else:
            entry['rank'] = position
        previous = entry
    return entries


def build_answers_table(true_order: Sequence[str], players: Sequence[dict]) -> List[dict]:
    """Actual answers vs player guesses, one row per true position.

    Guesses are 1-based slot numbers, or None if the item was never placed.
    """
    rows = []
    for index, item in enumerate(true_order):
        guesses: Dict[str, Optional[int]] = {}
        for p in players:
            ranking = list(p.get('ranking') or [])
            guesses[p.get('id')] = ranking.index(item) + 1 if item in ranking else None
        rows.append({'rank': index + 1, 'answer': item, 'guesses': guesses})
    return rows
