# dice_duel/api/schemas.py

from marshmallow import Schema, fields, pre_load, EXCLUDE
from marshmallow.validate import Length, Regexp, OneOf, Range

from dice_duel.game_core import constants as c

# --- Socket payloads ---

class ConnectSchema(Schema):
    """
    Auth payload sent with the Socket.IO handshake.
    Whitespace around the player id is stripped before validation.
    """
    class Meta:
        unknown = EXCLUDE

    player_id = fields.Str(
        required=True,
        validate=[
            Length(min=1, max=32, error="Player id must be 1 to 32 characters."),
            Regexp(
                r"^[A-Za-z0-9_\-]+$",
                error="Player id may only contain latin letters, digits, '_' and '-'."
            )
        ],
        error_messages={"required": "Player id is required."}
    )

    @pre_load
    def strip_whitespace(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('player_id'), str):
            data = dict(data, player_id=data['player_id'].strip())
        return data


class LockBetSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    amount = fields.Int(
        required=True,
        strict=True,
        validate=Range(min=0, error="Wager must be a non-negative integer."),
        error_messages={"required": "Wager amount is required."}
    )
    prediction = fields.Str(
        required=True,
        validate=OneOf(c.PREDICTIONS, error="Prediction must be one of: {choices}."),
        error_messages={"required": "Prediction is required."}
    )

    @pre_load
    def normalize_prediction(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('prediction'), str):
            data = dict(data, prediction=data['prediction'].strip().lower())
        return data

# --- Session snapshots ---

class BetSchema(Schema):
    player_id = fields.Str(required=True)
    round_number = fields.Int(required=True)
    amount = fields.Int(required=True, validate=Range(min=0))
    prediction = fields.Str(required=True, validate=OneOf(c.PREDICTIONS))
    locked_at = fields.Float(required=True)
    forced = fields.Bool(load_default=False)


class StandingSchema(Schema):
    score = fields.Int(required=True, validate=Range(min=0))
    win_streak = fields.Int(required=True, validate=Range(min=0))


class MatchSnapshotSchema(Schema):
    """
    Validates a MatchSession snapshot (for example one read back from JSON)
    before it is handed to ``MatchSession.restore``.
    """
    match_id = fields.Str(required=True)
    player_id = fields.Str(required=True)
    opponent_id = fields.Str(required=True)
    epoch = fields.Int(load_default=0, validate=Range(min=0))
    phase = fields.Str(required=True, validate=OneOf(c.RESTORABLE_PHASES))
    round_number = fields.Int(required=True, validate=Range(min=1))
    is_rush_round = fields.Bool(required=True)
    baseline = fields.Int(required=True)
    seconds_remaining = fields.Int(required=True, validate=Range(min=0))
    clock_running = fields.Bool(required=True)
    clock_expired = fields.Bool(required=True)
    results_hold = fields.Int(required=True, validate=Range(min=0))
    standings = fields.Dict(keys=fields.Str(), values=fields.Nested(StandingSchema), required=True)
    rounds_played = fields.Int(required=True, validate=Range(min=0))
    bets = fields.List(fields.Nested(BetSchema), required=True)
    # Round results are rebuilt by RoundResult.from_dict
    last_result = fields.Dict(allow_none=True, required=True)
    end_reason = fields.Str(allow_none=True, required=True)
    stale_events = fields.Int(load_default=0)
    phase_violations = fields.Int(load_default=0)
