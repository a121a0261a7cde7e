"""
Diagnostic labels for game-engine message ids.

These come from the engine's public message constants. They are labels for
dumps and reports only: many ids seen in keyed-section replays do not match
their legacy meaning, so nothing in the decoder depends on this table.
"""

MSG_NAMES = {
    1: 'MSG_RETRY',
    2: 'MSG_HINT',
    3: 'MSG_WAITING',
    4: 'MSG_START',
    5: 'MSG_WIN',
    6: 'MSG_UPDATE_DATA',
    7: 'MSG_UPDATE_CARD',
    8: 'MSG_REQUEST_DECK',
    10: 'MSG_SELECT_BATTLECMD',
    11: 'MSG_SELECT_IDLECMD',
    12: 'MSG_SELECT_EFFECTYN',
    13: 'MSG_SELECT_YESNO',
    14: 'MSG_SELECT_OPTION',
    15: 'MSG_SELECT_CARD',
    16: 'MSG_SELECT_CHAIN',
    18: 'MSG_SELECT_PLACE',
    19: 'MSG_SELECT_POSITION',
    20: 'MSG_SELECT_TRIBUTE',
    21: 'MSG_SORT_CHAIN',
    22: 'MSG_SELECT_COUNTER',
    23: 'MSG_SELECT_SUM',
    24: 'MSG_SELECT_DISFIELD',
    25: 'MSG_SORT_CARD',
    26: 'MSG_SELECT_UNSELECT_CARD',
    30: 'MSG_CONFIRM_DECKTOP',
    31: 'MSG_CONFIRM_CARDS',
    32: 'MSG_SHUFFLE_DECK',
    33: 'MSG_SHUFFLE_HAND',
    34: 'MSG_REFRESH_DECK',
    35: 'MSG_SWAP_GRAVE_DECK',
    36: 'MSG_SHUFFLE_SET_CARD',
    37: 'MSG_REVERSE_DECK',
    38: 'MSG_DECK_TOP',
    39: 'MSG_SHUFFLE_EXTRA',
    40: 'MSG_NEW_TURN',
    41: 'MSG_NEW_PHASE',
    42: 'MSG_CONFIRM_EXTRATOP',
    50: 'MSG_MOVE',
    53: 'MSG_POS_CHANGE',
    54: 'MSG_SET',
    55: 'MSG_SWAP',
    56: 'MSG_FIELD_DISABLED',
    60: 'MSG_SUMMONING',
    61: 'MSG_SUMMONED',
    62: 'MSG_SPSUMMONING',
    63: 'MSG_SPSUMMONED',
    64: 'MSG_FLIPSUMMONING',
    65: 'MSG_FLIPSUMMONED',
    70: 'MSG_CHAINING',
    71: 'MSG_CHAINED',
    72: 'MSG_CHAIN_SOLVING',
    73: 'MSG_CHAIN_SOLVED',
    74: 'MSG_CHAIN_END',
    75: 'MSG_CHAIN_NEGATED',
    76: 'MSG_CHAIN_DISABLED',
    80: 'MSG_CARD_SELECTED',
    81: 'MSG_RANDOM_SELECTED',
    83: 'MSG_BECOME_TARGET',
    90: 'MSG_DRAW',
    91: 'MSG_DAMAGE',
    92: 'MSG_RECOVER',
    93: 'MSG_EQUIP',
    94: 'MSG_LPUPDATE',
    95: 'MSG_UNEQUIP',
    96: 'MSG_CARD_TARGET',
    97: 'MSG_CANCEL_TARGET',
    100: 'MSG_PAY_LPCOST',
    101: 'MSG_ADD_COUNTER',
    102: 'MSG_REMOVE_COUNTER',
    110: 'MSG_ATTACK',
    111: 'MSG_BATTLE',
    112: 'MSG_ATTACK_DISABLED',
    113: 'MSG_DAMAGE_STEP_START',
    114: 'MSG_DAMAGE_STEP_END',
    120: 'MSG_MISSED_EFFECT',
    121: 'MSG_BE_CHAIN_TARGET',
    122: 'MSG_CREATE_RELATION',
    123: 'MSG_RELEASE_RELATION',
    130: 'MSG_TOSS_COIN',
    131: 'MSG_TOSS_DICE',
    132: 'MSG_ROCK_PAPER_SCISSORS',
    133: 'MSG_HAND_RES',
    140: 'MSG_ANNOUNCE_RACE',
    141: 'MSG_ANNOUNCE_ATTRIB',
    142: 'MSG_ANNOUNCE_CARD',
    143: 'MSG_ANNOUNCE_NUMBER',
    160: 'MSG_CARD_HINT',
    161: 'MSG_TAG_SWAP',
    162: 'MSG_RELOAD_FIELD',
    163: 'MSG_AI_NAME',
    164: 'MSG_SHOW_HINT',
    165: 'MSG_PLAYER_HINT',
    170: 'MSG_MATCH_KILL',
    180: 'MSG_CUSTOM_MSG',
    190: 'MSG_REMOVE_CARDS',
}


def message_name(msg_id: int) -> str:
    """Label for a message id, e.g. 'MSG_DRAW' or 'UNKNOWN_235'."""
    return MSG_NAMES.get(msg_id, f"UNKNOWN_{msg_id}")
