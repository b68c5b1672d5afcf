import json
import os
from typing import Any, Dict, Union

import numpy as np
import pandas as pd

from ..core import ordination, permutation

_META_KEY = "__meta__"


def _labels(index: pd.Index) -> list:
    """Converts index labels to JSON-safe Python scalars."""
    return [x.item() if isinstance(x, np.generic) else x for x in index]


def _decomposition_to_records(
    prefix: str, decomp: ordination.Decomposition
) -> Dict[str, pd.DataFrame]:
    records = {
        f"{prefix}_u": decomp.u,
        f"{prefix}_d": pd.DataFrame({"d": decomp.d}, index=decomp.u.columns),
        f"{prefix}_v": decomp.v,
    }
    if decomp.fitted_values is not None:
        records[f"{prefix}_fitted_values"] = decomp.fitted_values
    return records


def _decomposition_from_records(prefix: str, records: Dict[str, Any]):
    if f"{prefix}_u" not in records:
        return None
    d = records[f"{prefix}_d"]["d"].to_numpy()
    d = np.array(d, dtype=np.float64)
    d.setflags(write=False)
    return ordination.Decomposition(
        u=records[f"{prefix}_u"],
        d=d,
        v=records[f"{prefix}_v"],
        fitted_values=records.get(f"{prefix}_fitted_values"),
    )


def ordination_to_records(result: ordination.OrdinationResult) -> Dict[str, Any]:
    """
    Converts an OrdinationResult into a dict of pandas tables plus a
    JSON-safe `metadata` dict holding call metadata, inertia and degrees
    of freedom.

    Parameters
    ----------
    result : OrdinationResult
        Ordination to convert.

    Returns
    -------
    records : Dict[str, Any]
        Tables keyed by field name and a "metadata" entry.
    """
    records = {
        "scaled_matrix": result.scaled_matrix,
        "row_weights": result.row_weights.to_frame(),
        "col_weights": result.col_weights.to_frame(),
    }
    records.update(_decomposition_to_records("unconstrained", result.unconstrained))
    if result.constrained is not None:
        records.update(_decomposition_to_records("constrained", result.constrained))
    for name in ("constraints", "covariates", "partial_covariates"):
        table = getattr(result, name)
        if table is not None:
            records[name] = table
    records["metadata"] = {
        "call_metadata": dict(result.call_metadata),
        "inertia": dict(result.inertia),
        "degrees_of_freedom": {
            "num_df": int(result.degrees_of_freedom.num_df),
            "denom_df": int(result.degrees_of_freedom.denom_df),
        },
    }
    return records


def ordination_from_records(records: Dict[str, Any]) -> ordination.OrdinationResult:
    """
    Rebuilds an OrdinationResult from the output of
    `ordination_to_records`.
    """
    meta = records["metadata"]
    return ordination.OrdinationResult(
        scaled_matrix=records["scaled_matrix"],
        row_weights=records["row_weights"].iloc[:, 0].rename("row_weights"),
        col_weights=records["col_weights"].iloc[:, 0].rename("col_weights"),
        unconstrained=_decomposition_from_records("unconstrained", records),
        constrained=_decomposition_from_records("constrained", records),
        degrees_of_freedom=ordination.DegreesOfFreedom(
            **meta["degrees_of_freedom"]
        ),
        call_metadata=dict(meta["call_metadata"]),
        inertia=dict(meta["inertia"]),
        constraints=records.get("constraints"),
        covariates=records.get("covariates"),
        partial_covariates=records.get("partial_covariates"),
    )


def permutation_to_records(result: permutation.PermutationResult) -> Dict[str, Any]:
    """
    Converts a PermutationResult into a dict of pandas tables plus a
    JSON-safe `metadata` dict.
    """
    return {
        "F_perm": pd.DataFrame({"F_perm": np.asarray(result.F_perm)}),
        "fitted": result.fitted,
        "residuals": result.residuals,
        "metadata": {
            "F_stat": float(result.F_stat),
            "p_val": float(result.p_val),
            "num_df": int(result.num_df),
            "denom_df": int(result.denom_df),
            "n_permutations": int(result.n_permutations),
            "complete": bool(result.complete),
            "scheme": str(result.scheme),
            "seed": result.seed,
        },
    }


def permutation_from_records(records: Dict[str, Any]) -> permutation.PermutationResult:
    """
    Rebuilds a PermutationResult from the output of
    `permutation_to_records`.
    """
    meta = records["metadata"]
    F_perm = np.array(records["F_perm"]["F_perm"].to_numpy(), dtype=np.float64)
    F_perm.setflags(write=False)
    return permutation.PermutationResult(
        F_stat=meta["F_stat"],
        F_perm=F_perm,
        p_val=meta["p_val"],
        num_df=meta["num_df"],
        denom_df=meta["denom_df"],
        fitted=records["fitted"],
        residuals=records["residuals"],
        n_permutations=meta["n_permutations"],
        complete=meta["complete"],
        scheme=meta["scheme"],
        seed=meta["seed"],
    )


def _save_records(records: Dict[str, Any], kind: str, fpath: Union[str, os.PathLike]):
    arrays = {}
    meta = {"kind": kind, "metadata": records["metadata"], "tables": {}}
    for name, table in records.items():
        if name == "metadata":
            continue
        arrays[name] = table.to_numpy(dtype=np.float64)
        meta["tables"][name] = {
            "index": _labels(table.index),
            "columns": _labels(table.columns),
        }
    arrays[_META_KEY] = np.array(json.dumps(meta))
    np.savez_compressed(fpath, **arrays)


def _load_records(fpath: Union[str, os.PathLike], kind: str) -> Dict[str, Any]:
    with np.load(fpath, allow_pickle=False) as archive:
        meta = json.loads(str(archive[_META_KEY]))
        if meta["kind"] != kind:
            raise ValueError(f"{fpath} holds a {meta['kind']} result, not {kind}.")
        records = {
            name: pd.DataFrame(
                archive[name],
                index=pd.Index(labels["index"]),
                columns=pd.Index(labels["columns"]),
            )
            for name, labels in meta["tables"].items()
        }
    records["metadata"] = meta["metadata"]
    return records


def save_ordination(
    result: ordination.OrdinationResult, fpath: Union[str, os.PathLike]
) -> None:
    """
    Saves an OrdinationResult to a compressed `.npz` archive. Tables are
    stored as float arrays with their identifiers and the metadata as
    JSON, so loading needs no pickling.
    """
    _save_records(ordination_to_records(result), "ordination", fpath)


def load_ordination(fpath: Union[str, os.PathLike]) -> ordination.OrdinationResult:
    """Loads an OrdinationResult saved by `save_ordination`."""
    return ordination_from_records(_load_records(fpath, "ordination"))


def save_permutation(
    result: permutation.PermutationResult, fpath: Union[str, os.PathLike]
) -> None:
    """Saves a PermutationResult to a compressed `.npz` archive."""
    _save_records(permutation_to_records(result), "permutation", fpath)


def load_permutation(fpath: Union[str, os.PathLike]) -> permutation.PermutationResult:
    """Loads a PermutationResult saved by `save_permutation`."""
    return permutation_from_records(_load_records(fpath, "permutation"))
