"""
==================================
SQLSTATE based error classification.
==================================

Every backend failure is reduced to one of four outcomes:

    SUCCESS     - no error
    ERROR       - report the failure, no retry
    RECONNECT   - drop the connection and retry the statement
    INTERRUPT   - report immediately and force any open transaction closed

Classification looks at the two-character SQLSTATE class. Classes that are
not listed are treated as connection trouble and retried, since drivers fall
back to vendor codes exactly when the link itself is broken.

Reference: https://www.postgresql.org/docs/current/errcodes-appendix.html
"""

from enum import Enum
from typing import Dict, Optional, Tuple


class StateConstant(Enum):
    SUCCESS = 1
    ERROR = 0
    RECONNECT = -1
    INTERRUPT = -2


SQLSTATE_CLASSES: Dict[str, Tuple[str, StateConstant]] = {
    '00': ('Successful Completion', StateConstant.SUCCESS),
    '01': ('Warning', StateConstant.ERROR),
    '02': ('No Data', StateConstant.ERROR),
    '03': ('SQL Statement Not Yet Complete', StateConstant.ERROR),
    '08': ('Connection Exception', StateConstant.RECONNECT),
    '09': ('Triggered Action Exception', StateConstant.ERROR),
    '0A': ('Feature Not Supported', StateConstant.ERROR),
    '0B': ('Invalid Transaction Initiation', StateConstant.ERROR),
    '0F': ('Locator Exception', StateConstant.ERROR),
    '0L': ('Invalid Grantor', StateConstant.INTERRUPT),
    '0P': ('Invalid Role Specification', StateConstant.ERROR),
    '0Z': ('Diagnostics Exception', StateConstant.INTERRUPT),
    '20': ('Case Not Found', StateConstant.ERROR),
    '21': ('Cardinality Violation', StateConstant.ERROR),
    '22': ('Data Exception', StateConstant.ERROR),
    '23': ('Integrity Constraint Violation', StateConstant.ERROR),
    '24': ('Invalid Cursor State', StateConstant.ERROR),
    '25': ('Invalid Transaction State', StateConstant.ERROR),
    '26': ('Invalid SQL Statement Name', StateConstant.ERROR),
    '27': ('Triggered Data Change Violation', StateConstant.ERROR),
    '28': ('Invalid Authorization Specification', StateConstant.ERROR),
    '2B': ('Dependent Privilege Descriptors Still Exist', StateConstant.ERROR),
    '2D': ('Invalid Transaction Termination', StateConstant.ERROR),
    '2F': ('SQL Routine Exception', StateConstant.ERROR),
    '34': ('Invalid Cursor Name', StateConstant.ERROR),
    '38': ('External Routine Exception', StateConstant.ERROR),
    '39': ('External Routine Invocation Exception', StateConstant.ERROR),
    '3B': ('Savepoint Exception', StateConstant.INTERRUPT),
    '3D': ('Invalid Catalog Name', StateConstant.ERROR),
    '3F': ('Invalid Schema Name', StateConstant.ERROR),
    '40': ('Transaction Rollback', StateConstant.ERROR),
    '42': ('Syntax Error or Access Rule Violation', StateConstant.ERROR),
    '44': ('WITH CHECK OPTION Violation', StateConstant.ERROR),
    '53': ('Insufficient Resources', StateConstant.INTERRUPT),
    '54': ('Program Limit Exceeded', StateConstant.ERROR),
    '55': ('Object Not In Prerequisite State', StateConstant.ERROR),
    '57': ('Operator Intervention', StateConstant.INTERRUPT),
    '58': ('System Error', StateConstant.INTERRUPT),
    '72': ('Snapshot Failure', StateConstant.ERROR),
    'F0': ('Configuration File Error', StateConstant.INTERRUPT),
    'HV': ('Foreign Data Wrapper Error', StateConstant.ERROR),
    'P0': ('PL/pgSQL Error', StateConstant.INTERRUPT),
    'XX': ('Internal Error', StateConstant.INTERRUPT),
}

UNDEFINED_STATE = ('Undefined Error', StateConstant.RECONNECT)

# Full codes whose meaning differs from their class
SQLSTATE_OVERRIDES: Dict[str, StateConstant] = {
    'HY093': StateConstant.ERROR,   # invalid parameter number / name
    'HY000': StateConstant.ERROR,   # general error raised by the statement itself
}


def sqlstate_class(sqlstate: Optional[str]) -> str:
    """Return the two-character class of a SQLSTATE ('' when missing)."""
    return (sqlstate or '')[:2].upper()


def describe(sqlstate: Optional[str]) -> Tuple[str, StateConstant]:
    """Return (description, StateConstant) for a SQLSTATE.

    Example:
        >>> describe('08006')
        ('Connection Exception', <StateConstant.RECONNECT: -1>)
    """
    if sqlstate and sqlstate.upper() in SQLSTATE_OVERRIDES:
        state = SQLSTATE_OVERRIDES[sqlstate.upper()]
        return SQLSTATE_CLASSES.get(sqlstate_class(sqlstate), UNDEFINED_STATE)[0], state
    return SQLSTATE_CLASSES.get(sqlstate_class(sqlstate), UNDEFINED_STATE)


def classify(sqlstate: Optional[str]) -> StateConstant:
    """Map a SQLSTATE onto a StateConstant."""
    return describe(sqlstate)[1]
