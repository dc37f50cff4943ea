"""Factor graph representation for bundle adjustment."""

import numpy as np
from typing import List, Dict, Optional, Any, Tuple
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from scipy.sparse import coo_matrix, csr_matrix


class VariableType(Enum):
    """Types of optimization variables."""
    VIEW_ROTATION = "view_rotation"
    VIEW_TRANSLATION = "view_translation"
    TRACK_POINT = "track_point"
    INTRINSIC = "intrinsic"
    DISTORTION = "distortion"


@dataclass
class Variable:
    """Optimization variable in the factor graph.

    is_constant excludes the variable from the parameter vector without
    removing it from the graph.
    """

    id: str
    type: VariableType
    size: int
    value: Optional[np.ndarray] = None
    is_constant: bool = False
    lower_bounds: Optional[np.ndarray] = None
    upper_bounds: Optional[np.ndarray] = None

    def __post_init__(self):
        """Initialize variable with proper array shapes."""
        if self.value is not None:
            self.value = np.atleast_1d(np.asarray(self.value, dtype=float)).copy()
            if len(self.value) != self.size:
                raise ValueError(f"Variable {self.id}: value size {len(self.value)} != expected size {self.size}")

        for name in ("lower_bounds", "upper_bounds"):
            bounds = getattr(self, name)
            if bounds is not None:
                bounds = np.atleast_1d(np.asarray(bounds, dtype=float))
                if len(bounds) != self.size:
                    raise ValueError(f"Variable {self.id}: {name} size != variable size")
                setattr(self, name, bounds)

    def is_initialized(self) -> bool:
        """Check if variable has a value."""
        return self.value is not None

    def get_value(self) -> np.ndarray:
        """Get variable value, ensuring it exists."""
        if self.value is None:
            raise ValueError(f"Variable {self.id} has no value")
        return self.value.copy()

    def set_value(self, value: np.ndarray) -> None:
        """Set variable value with validation."""
        value = np.atleast_1d(value)
        if len(value) != self.size:
            raise ValueError(f"Variable {self.id}: new value size {len(value)} != expected size {self.size}")
        self.value = value.astype(float).copy()

    def clamp_to_bounds(self) -> None:
        """Clamp variable value to bounds if they exist."""
        if self.value is None:
            return

        if self.lower_bounds is not None:
            self.value = np.maximum(self.value, self.lower_bounds)

        if self.upper_bounds is not None:
            self.value = np.minimum(self.value, self.upper_bounds)


class Factor(ABC):
    """Abstract base class for factors in the factor graph."""

    def __init__(self, factor_id: str, variable_ids: List[str]):
        """Initialize factor.

        Args:
            factor_id: Unique identifier for this factor
            variable_ids: List of variable IDs this factor depends on
        """
        self.factor_id = factor_id
        self.variable_ids = variable_ids

    @abstractmethod
    def compute_residual(self, variables: Dict[str, np.ndarray]) -> np.ndarray:
        """Compute residual given variable values.

        Args:
            variables: Dictionary mapping variable IDs to their values

        Returns:
            Residual vector
        """
        pass

    @abstractmethod
    def compute_jacobian(self, variables: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        """Compute Jacobian of residual with respect to variables.

        Args:
            variables: Dictionary mapping variable IDs to their values

        Returns:
            Dictionary mapping variable IDs to their Jacobian matrices
        """
        pass

    @abstractmethod
    def residual_dimension(self) -> int:
        """Get dimension of residual vector."""
        pass


class FactorGraph:
    """Factor graph for bundle adjustment optimization."""

    def __init__(self):
        """Initialize empty factor graph."""
        self.variables: Dict[str, Variable] = {}
        self.factors: Dict[str, Factor] = {}
        self._variable_ordering: List[str] = []
        self._factor_ordering: List[str] = []

    def add_variable(self, variable: Variable) -> None:
        """Add a variable to the graph."""
        if variable.id in self.variables:
            raise ValueError(f"Variable {variable.id} already exists")

        self.variables[variable.id] = variable
        self._variable_ordering.append(variable.id)

    def add_factor(self, factor: Factor) -> None:
        """Add a factor to the graph."""
        if factor.factor_id in self.factors:
            raise ValueError(f"Factor {factor.factor_id} already exists")

        for var_id in factor.variable_ids:
            if var_id not in self.variables:
                raise ValueError(f"Factor {factor.factor_id} references unknown variable {var_id}")

        self.factors[factor.factor_id] = factor
        self._factor_ordering.append(factor.factor_id)

    def get_variable(self, variable_id: str) -> Variable:
        """Get variable by ID."""
        if variable_id not in self.variables:
            raise ValueError(f"Variable {variable_id} not found")
        return self.variables[variable_id]

    def get_factor(self, factor_id: str) -> Factor:
        """Get factor by ID."""
        if factor_id not in self.factors:
            raise ValueError(f"Factor {factor_id} not found")
        return self.factors[factor_id]

    def get_variable_ids(self) -> List[str]:
        """Get list of all variable IDs in order."""
        return self._variable_ordering.copy()

    def get_factor_ids(self) -> List[str]:
        """Get list of all factor IDs in order."""
        return self._factor_ordering.copy()

    def free_variable_ids(self) -> List[str]:
        """IDs of non-constant variables in parameter order."""
        return [var_id for var_id in self._variable_ordering if not self.variables[var_id].is_constant]

    def parameter_offsets(self) -> Tuple[Dict[str, int], int]:
        """Column offset of each free variable and the total parameter count."""
        offsets = {}
        offset = 0
        for var_id in self.free_variable_ids():
            offsets[var_id] = offset
            offset += self.variables[var_id].size
        return offsets, offset

    def pack_variables(self) -> np.ndarray:
        """Pack free variable values into a single vector."""
        packed_values = [self.variables[var_id].get_value() for var_id in self.free_variable_ids()]
        if not packed_values:
            return np.array([])
        return np.concatenate(packed_values)

    def unpack_variables(self, params: np.ndarray) -> None:
        """Unpack parameter vector into free variable values."""
        offset = 0
        for var_id in self.free_variable_ids():
            variable = self.variables[var_id]
            end_offset = offset + variable.size
            if end_offset > len(params):
                raise ValueError(f"Not enough parameters for variable {var_id}")

            variable.set_value(params[offset:end_offset])
            variable.clamp_to_bounds()
            offset = end_offset

        if offset != len(params):
            raise ValueError(f"Parameter vector size mismatch: {offset} vs {len(params)}")

    def get_variable_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Lower and upper bounds of the free parameters."""
        lower_bounds = []
        upper_bounds = []

        for var_id in self.free_variable_ids():
            variable = self.variables[var_id]
            if variable.lower_bounds is not None:
                lower_bounds.append(variable.lower_bounds)
            else:
                lower_bounds.append(np.full(variable.size, -np.inf))

            if variable.upper_bounds is not None:
                upper_bounds.append(variable.upper_bounds)
            else:
                upper_bounds.append(np.full(variable.size, np.inf))

        if not lower_bounds:
            return np.array([]), np.array([])

        return np.concatenate(lower_bounds), np.concatenate(upper_bounds)

    def _values_for(self, factor: Factor) -> Dict[str, np.ndarray]:
        values = {}
        for var_id in factor.variable_ids:
            variable = self.variables[var_id]
            if not variable.is_initialized():
                raise ValueError(f"Variable {var_id} required by factor {factor.factor_id} is not initialized")
            values[var_id] = variable.value
        return values

    def residual_dimension(self) -> int:
        """Total length of the residual vector."""
        return sum(factor.residual_dimension() for factor in self.factors.values())

    def compute_all_residuals(self) -> np.ndarray:
        """Concatenated residual vector of all factors in order."""
        residuals = [
            self.factors[factor_id].compute_residual(self._values_for(self.factors[factor_id]))
            for factor_id in self._factor_ordering
        ]
        if not residuals:
            return np.array([])
        return np.concatenate(residuals)

    def compute_jacobian(self) -> csr_matrix:
        """Sparse Jacobian of the residual vector with respect to free parameters."""
        offsets, n_params = self.parameter_offsets()
        rows, cols, data = [], [], []

        residual_offset = 0
        for factor_id in self._factor_ordering:
            factor = self.factors[factor_id]
            residual_dim = factor.residual_dimension()
            jacobians = factor.compute_jacobian(self._values_for(factor))

            for var_id, block in jacobians.items():
                if var_id not in offsets:
                    continue
                block_rows, block_cols = np.indices(block.shape)
                rows.append((residual_offset + block_rows).ravel())
                cols.append((offsets[var_id] + block_cols).ravel())
                data.append(np.asarray(block, dtype=float).ravel())

            residual_offset += residual_dim

        if not data:
            return csr_matrix((residual_offset, n_params))

        return coo_matrix(
            (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
            shape=(residual_offset, n_params)
        ).tocsr()

    def compute_jacobian_structure(self) -> csr_matrix:
        """Sparsity pattern of the Jacobian (ones where a block may be non-zero)."""
        offsets, n_params = self.parameter_offsets()
        rows, cols = [], []

        residual_offset = 0
        for factor_id in self._factor_ordering:
            factor = self.factors[factor_id]
            residual_dim = factor.residual_dimension()

            for var_id in factor.variable_ids:
                if var_id in offsets:
                    size = self.variables[var_id].size
                    block_rows, block_cols = np.indices((residual_dim, size))
                    rows.append((residual_offset + block_rows).ravel())
                    cols.append((offsets[var_id] + block_cols).ravel())

            residual_offset += residual_dim

        if not rows:
            return csr_matrix((residual_offset, n_params))

        rows = np.concatenate(rows)
        return csr_matrix(
            (np.ones(len(rows)), (rows, np.concatenate(cols))),
            shape=(residual_offset, n_params)
        )

    def summary(self) -> Dict[str, Any]:
        """Get summary information about the factor graph."""
        var_type_counts = {}
        total_var_size = 0
        constant_vars = 0

        for variable in self.variables.values():
            var_type = variable.type.value
            var_type_counts[var_type] = var_type_counts.get(var_type, 0) + 1
            total_var_size += variable.size
            if variable.is_constant:
                constant_vars += 1

        factor_type_counts = {}
        for factor in self.factors.values():
            factor_type = type(factor).__name__
            factor_type_counts[factor_type] = factor_type_counts.get(factor_type, 0) + 1

        return {
            "variables": {
                "total": len(self.variables),
                "constant": constant_vars,
                "free": len(self.variables) - constant_vars,
                "total_parameters": total_var_size,
                "by_type": var_type_counts
            },
            "factors": {
                "total": len(self.factors),
                "total_residuals": self.residual_dimension(),
                "by_type": factor_type_counts
            }
        }
