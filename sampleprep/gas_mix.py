"""
Ion chamber fill-gas mixture editing with fractions that always sum to 1.

Each operation takes the current list of GasEntry and returns a NEW list
of NEW entries; the input is never mutated, so the same mixture can be
shared between views and kept for undo without aliasing.

    add_gas              - scale existing fractions by (1 - f_new) / total
    remove_gas           - redistribute the removed fraction proportionally
    update_gas_fraction  - set one fraction, rescale the others to fill 1

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

from sampleprep.constants import DEFAULT_NEW_GAS_FRACTION, GAS_TOTAL_FLOOR


class GasEntry:
    """One named gas and its mole fraction in the fill."""

    def __init__(self, name, fraction):
        self.name = name
        self.fraction = float(fraction)

    def replace(self, fraction):
        return GasEntry(self.name, fraction)

    def to_dict(self):
        return {"name": self.name, "fraction": self.fraction}

    @classmethod
    def from_dict(cls, data):
        """
        Build an entry from {"name": str, "fraction": number}.

        Raises
        ------
        ValueError
            If the name is missing or the fraction is not a number.
        """
        if not isinstance(data, dict):
            raise ValueError("Each gas must be an object with name and fraction")
        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ValueError("Each gas needs a name")
        try:
            fraction = float(data.get("fraction", 0.0))
        except (TypeError, ValueError):
            raise ValueError("Gas '%s' has a non-numeric fraction" % name)
        return cls(name, fraction)

    def __repr__(self):
        return "GasEntry(%r, %r)" % (self.name, self.fraction)


def total_fraction(gases):
    return sum(g.fraction for g in gases)


def _copy(gases):
    return [g.replace(g.fraction) for g in gases]


def add_gas(gases, name, new_fraction=DEFAULT_NEW_GAS_FRACTION):
    """
    Append a gas at `new_fraction`, scaling the others to make room.

    new_fraction outside (0, 1), or NaN, is rejected and the mixture is
    returned unchanged. Adding to an empty mixture gives that gas fraction 1.
    """
    if not 0 < new_fraction < 1:
        return _copy(gases)
    if not gases:
        return [GasEntry(name, 1.0)]

    total = total_fraction(gases)
    scale = (1.0 - new_fraction) / max(total, GAS_TOTAL_FLOOR)
    rebalanced = [g.replace(max(0.0, g.fraction * scale)) for g in gases]
    rebalanced.append(GasEntry(name, new_fraction))
    return rebalanced


def remove_gas(gases, index):
    """
    Remove the gas at `index` and hand its share to the rest proportionally.

    If the remaining gases all sit at 0, the first one takes the whole fill.
    Out-of-range indices and removal of the only gas leave the mixture as is.
    """
    if index < 0 or index >= len(gases):
        return _copy(gases)
    removed = gases[index]
    remaining = [g for i, g in enumerate(gases) if i != index]
    if not remaining:
        return _copy(gases)

    remaining_sum = total_fraction(remaining)
    if remaining_sum <= 0:
        return [g.replace(1.0 if i == 0 else 0.0)
                for i, g in enumerate(remaining)]

    scale = (remaining_sum + removed.fraction) / remaining_sum
    return [g.replace(g.fraction * scale) for g in remaining]


def update_gas_fraction(gases, index, next_fraction):
    """
    Set the gas at `index` to `next_fraction` (clamped to [0, 1]).

    The other gases are rescaled proportionally to fill 1 - next_fraction;
    if they are all at 0 the remainder is split equally among them. A
    single-gas mixture is always forced to 1.
    """
    if index < 0 or index >= len(gases):
        return _copy(gases)
    clamped = min(1.0, max(0.0, next_fraction))
    if len(gases) == 1:
        return [gases[0].replace(1.0)]

    others_sum = sum(g.fraction for i, g in enumerate(gases) if i != index)
    remaining = 1.0 - clamped
    if others_sum <= 0:
        each = remaining / (len(gases) - 1)
        return [g.replace(clamped if i == index else each)
                for i, g in enumerate(gases)]

    scale = remaining / others_sum
    return [g.replace(clamped if i == index else max(0.0, g.fraction * scale))
            for i, g in enumerate(gases)]
