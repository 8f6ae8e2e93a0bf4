"""Dense matrix storage layouts.

Each matrix owns a flat one-dimensional numpy buffer and maps an element
``(i, j)`` to an offset in it according to its layout:

    - `DenseMatrix` - general ``m x n`` matrix, ``m * n`` scalars.
    - `SymmetricMatrix` - ``n x n`` symmetric matrix, ``n * n`` scalars of which
      only the upper triangle is significant.
    - `TriangularMatrix` - ``n x n`` upper or lower triangular matrix stored in
      ``n * n`` scalars.
    - `SymmetricPackedMatrix`, `HermitianPackedMatrix`, `TriangularPackedMatrix` -
      only one triangle is stored contiguously, ``n * (n + 1) / 2`` scalars.

Row-major (``order='C'``) or column-major (``order='F'``) ordering and the stored
triangle (``lower``) are fixed at construction. Packed offsets are::

    upper, row-major:     i * n - i * (i - 1) / 2 + j - i
    upper, column-major:  i + j * (j + 1) / 2
    lower, row-major:     i * (i + 1) / 2 + j
    lower, column-major:  i - j + j * (2 * n - j + 1) / 2

The lower formulas are the upper ones with ``i`` and ``j`` exchanged and the
ordering flipped, which is how they are computed here.

Symmetric layouts read and write the mirrored entry when an element outside the
stored triangle is accessed (conjugated for Hermitian storage), so
``M[i, j] == M[j, i]`` always holds. Triangular layouts read zeros outside the
stored triangle.

Binary files hold two int32 values (number of rows and columns) followed by the
stored buffer in storage order and native byte order. Text files hold one row
per line with tab-separated entries.
"""
import contextlib
import operator
import os
import numpy as np
from scipy._lib._util import check_random_state
from .errors import MatrixIOError, OutOfMemory


class NumpyAllocator:
    """Allocator returning uninitialized flat numpy buffers."""

    def allocate(self, size, dtype):
        return np.empty(size, dtype=dtype)


DEFAULT_ALLOCATOR = NumpyAllocator()


class BufferHandle:
    """Handle owning a raw matrix buffer.

    Produced by `Matrix.nullify` and consumed by `Matrix.set_data`. Once adopted
    by a matrix the handle is released and its buffer can't be accessed through
    it anymore.

    Attributes
    ----------
    m, n : int
        Dimensions of the matrix the buffer belonged to.
    storage : str
        Storage tag of that matrix.
    """

    def __init__(self, data, m, n, storage):
        self._data = data
        self.m = m
        self.n = n
        self.storage = storage

    @property
    def valid(self):
        return self._data is not None

    @property
    def data(self):
        if self._data is None:
            raise ValueError("The buffer handle is empty or was released.")
        return self._data

    def release(self):
        """Give up the buffer and return it."""
        data = self.data
        self._data = None
        return data

    def __repr__(self):
        return "BufferHandle({}, {} x {}, valid={})".format(
            self.storage, self.m, self.n, self.valid)


def _check_dimension(value):
    value = operator.index(value)
    if value < 0:
        raise ValueError("Matrix dimensions must be non-negative, got {}".format(value))
    return value


def _parse_scalar(token, dtype):
    if dtype.kind == 'c':
        return complex(token)
    if dtype.kind == 'f':
        return float(token)
    if dtype.kind in 'iu':
        return int(token)
    if dtype.kind == 'b':
        if token not in ('True', 'False'):
            raise ValueError("invalid boolean literal: {!r}".format(token))
        return token == 'True'
    return token


@contextlib.contextmanager
def _opened(target, mode, operation):
    if isinstance(target, (str, os.PathLike)):
        path = os.fspath(target)
        try:
            stream = open(path, mode)
        except OSError as exc:
            raise MatrixIOError(operation, path, "Unable to open file.") from exc
        with stream:
            yield stream, path
    else:
        yield target, getattr(target, 'name', None)


def _check_ready(stream, operation, path):
    if getattr(stream, 'closed', False):
        raise MatrixIOError(operation, path, "Stream is not ready.")


class Matrix:
    """Base class for all storage layouts.

    Parameters
    ----------
    m : int, optional
        Number of rows. Default is 0.
    n : int or None, optional
        Number of columns. Ignored by square layouts. If None (default), equal
        to `m`.
    dtype : data-type, optional
        Scalar type. Default is float.
    order : {'C', 'F'}, optional
        Row-major ('C', default) or column-major ('F') storage.
    allocator : object or None, optional
        Object with ``allocate(size, dtype)`` method. If None (default),
        `DEFAULT_ALLOCATOR` is used.

    Raises
    ------
    OutOfMemory
        If the buffer can't be allocated.
    """
    storage = None
    square = True
    lower = False
    _mirrored = False
    _conjugate_mirror = False

    def __init__(self, m=0, n=None, dtype=float, order='C', allocator=None):
        if order not in ('C', 'F'):
            raise ValueError("`order` must be 'C' or 'F', got {!r}".format(order))
        self.order = order
        self.dtype = np.dtype(dtype)
        self.allocator = DEFAULT_ALLOCATOR if allocator is None else allocator
        self._m = 0
        self._n = 0
        self._data = None
        self._allocate(m, n, type(self).__name__)

    # Layout-specific methods.

    def _dims(self, m, n):
        m = _check_dimension(m)
        return m, m

    def _data_size(self, m, n):
        raise NotImplementedError

    def _offset(self, i, j, m, n):
        raise NotImplementedError

    def _stored_indices(self, m, n):
        raise NotImplementedError

    def _canonical(self, i, j):
        raise NotImplementedError

    # Memory management.

    def _allocate(self, m, n, operation):
        m, n = self._dims(m, n)
        size = self._data_size(m, n)
        data = None
        if size > 0:
            try:
                data = self.allocator.allocate(size, self.dtype)
            except MemoryError as exc:
                self.clear()
                raise OutOfMemory(
                    operation, "Unable to allocate memory for a {} x {} matrix."
                    .format(m, n)) from exc
            if data is None:
                self.clear()
                raise OutOfMemory(
                    operation, "Unable to allocate memory for a {} x {} matrix."
                    .format(m, n))
        self._m = m
        self._n = n
        self._data = data

    @property
    def shape(self):
        return self._m, self._n

    @property
    def m(self):
        return self._m

    @property
    def n(self):
        return self._n

    @property
    def data(self):
        """Stored buffer or None for an empty matrix."""
        return self._data

    @property
    def data_size(self):
        """Number of stored scalars."""
        return self._data_size(self._m, self._n)

    @property
    def memory_size(self):
        """Size of the stored buffer in bytes."""
        return self.data_size * self.dtype.itemsize

    def clear(self):
        """Release the buffer, the matrix becomes 0 x 0."""
        self._data = None
        self._m = 0
        self._n = 0

    def reallocate(self, m, n=None):
        """Change the dimensions, the previous entries are lost.

        Nothing is done if the dimensions are unchanged. On failure the matrix
        is left empty and `OutOfMemory` is raised.
        """
        if self._dims(m, n) == self.shape:
            return
        self.clear()
        self._allocate(m, n, 'reallocate')

    def resize(self, m, n=None):
        """Change the dimensions keeping the entries of the overlapping region.

        Entries outside of the previous dimensions are not initialized.
        """
        m, n = self._dims(m, n)
        if (m, n) == self.shape:
            return
        old_data, old_m, old_n = self._data, self._m, self._n
        self.clear()
        self._allocate(m, n, 'resize')

        m_min = min(m, old_m)
        n_min = min(n, old_n)
        if old_data is not None and self._data is not None and m_min > 0 and n_min > 0:
            i, j = self._stored_indices(m_min, n_min)
            self._data[self._offset(i, j, m, n)] = \
                old_data[self._offset(i, j, old_m, old_n)]

    def set_data(self, m, n, data):
        """Adopt an existing buffer without copying it.

        Parameters
        ----------
        m, n : int
            New dimensions (`n` is ignored by square layouts).
        data : BufferHandle or ndarray
            Either a handle obtained from `nullify` (it is released) or a flat
            contiguous array with exactly the number of scalars required by the
            layout and the dtype of the matrix.
        """
        m, n = self._dims(m, n)
        buffer = data.data if isinstance(data, BufferHandle) else data
        if (not isinstance(buffer, np.ndarray) or buffer.ndim != 1 or
                not buffer.flags.c_contiguous):
            raise ValueError("`data` must be a flat contiguous ndarray")
        if buffer.dtype != self.dtype:
            raise ValueError("`data` has dtype {}, expected {}"
                             .format(buffer.dtype, self.dtype))
        size = self._data_size(m, n)
        if buffer.size != size:
            raise ValueError("`data` has {} elements, {} required for {} x {}"
                             .format(buffer.size, size, m, n))
        if isinstance(data, BufferHandle):
            data.release()

        self.clear()
        self._m = m
        self._n = n
        self._data = buffer if size > 0 else None

    def nullify(self):
        """Give up ownership of the buffer without releasing it.

        Returns
        -------
        BufferHandle
            Handle owning the former buffer. The matrix becomes 0 x 0 without
            buffer.
        """
        handle = BufferHandle(self._data, self._m, self._n, self.storage)
        self._data = None
        self._m = 0
        self._n = 0
        return handle

    # Element access.

    def _check_index(self, index):
        try:
            i, j = index
        except (TypeError, ValueError):
            raise IndexError("Matrix index must be a pair (i, j)") from None
        i = operator.index(i)
        j = operator.index(j)
        if not 0 <= i < self._m:
            raise IndexError("Row index should be in [0, {}], but is equal to {}."
                             .format(self._m - 1, i))
        if not 0 <= j < self._n:
            raise IndexError("Column index should be in [0, {}], but is equal to {}."
                             .format(self._n - 1, j))
        return i, j

    def __getitem__(self, index):
        i, j = self._check_index(index)
        location = self._canonical(i, j)
        if location is None:
            return self.dtype.type(0)
        i, j, mirrored = location
        value = self._data[self._offset(i, j, self._m, self._n)]
        if mirrored and self._conjugate_mirror:
            value = np.conj(value)
        return value

    def __setitem__(self, index, value):
        i, j = self._check_index(index)
        location = self._canonical(i, j)
        if location is None:
            if value != 0:
                raise ValueError("Entry ({}, {}) is outside of the stored triangle "
                                 "and can only be zero.".format(i, j))
            return
        i, j, mirrored = location
        if mirrored and self._conjugate_mirror:
            value = np.conj(value)
        self._data[self._offset(i, j, self._m, self._n)] = value

    # Convenient functions.

    def zero(self):
        """Fill the buffer memory with zero bytes.

        Not available for object dtypes, use ``fill(0)`` for them.
        """
        if self.dtype.hasobject:
            raise TypeError("zero() works only for plain numeric types, "
                            "use fill(0) instead")
        if self._data is not None:
            self._data.view(np.uint8).fill(0)

    def fill(self, value=None):
        """Fill stored scalars with `value` or with 0, 1, 2, ... if None."""
        if self._data is None:
            return
        if value is None:
            self._data[:] = np.arange(self._data.size)
        else:
            self._data.fill(value)

    def fill_rand(self, rng=None):
        """Fill stored scalars with uniform random numbers from [0, 1)."""
        rng = check_random_state(rng)
        if self._data is not None:
            self._data[:] = rng.uniform(size=self._data.size)

    def set_identity(self):
        self.fill(0)
        for k in range(min(self._m, self._n)):
            self[k, k] = 1

    def copy(self):
        other = object.__new__(type(self))
        other.__dict__.update(self.__dict__)
        if self._data is not None:
            other._data = self._data.copy()
        return other

    def __imul__(self, value):
        if self._data is not None:
            self._data *= value
        return self

    def to_array(self):
        """Return the full dense matrix as ndarray."""
        A = np.zeros(self.shape, dtype=self.dtype)
        if self._data is None:
            return A
        i, j = self._stored_indices(self._m, self._n)
        values = self._data[self._offset(i, j, self._m, self._n)]
        if self._mirrored:
            A[j, i] = np.conj(values) if self._conjugate_mirror else values
        A[i, j] = values
        return A

    def assign(self, A):
        """Write a dense array into the stored entries of the matrix.

        Only the stored triangle of `A` is read by symmetric and triangular
        layouts.
        """
        A = np.asarray(A)
        if A.shape != self.shape:
            raise ValueError("Array shape {} doesn't match matrix shape {}"
                             .format(A.shape, self.shape))
        if self._data is None:
            return
        i, j = self._stored_indices(self._m, self._n)
        self._data[self._offset(i, j, self._m, self._n)] = A[i, j]

    @classmethod
    def from_array(cls, A, **kwargs):
        """Create a matrix of this layout from a dense array."""
        A = np.asarray(A)
        if A.ndim != 2:
            raise ValueError("`A` must be 2-dimensional")
        if cls.square and A.shape[0] != A.shape[1]:
            raise ValueError("{} requires a square array, got shape {}"
                             .format(cls.__name__, A.shape))
        kwargs.setdefault('dtype', A.dtype)
        M = cls(*A.shape, **kwargs)
        M.assign(A)
        return M

    def matvec(self, x):
        return self.to_array() @ np.asarray(x)

    def trace(self):
        if self._data is None:
            return self.dtype.type(0)
        k = np.arange(min(self._m, self._n))
        return self._data[self._offset(k, k, self._m, self._n)].sum()

    # Input/output.

    def write(self, target):
        """Write the matrix in binary format to a file name or binary stream."""
        with _opened(target, 'wb', 'write') as (stream, path):
            _check_ready(stream, 'write', path)
            try:
                stream.write(np.array([self._m, self._n], dtype=np.int32).tobytes())
                if self._data is not None:
                    stream.write(self._data.tobytes())
            except (OSError, ValueError) as exc:
                raise MatrixIOError(
                    'write', path, "Output operation failed. The output file may "
                    "have been removed or there is no space left on device.") from exc

    def read(self, source):
        """Read the matrix in binary format from a file name or binary stream."""
        with _opened(source, 'rb', 'read') as (stream, path):
            _check_ready(stream, 'read', path)
            try:
                header = stream.read(8)
            except (OSError, ValueError) as exc:
                raise MatrixIOError('read', path, "Input operation failed.") from exc
            if len(header) != 8:
                raise MatrixIOError('read', path, "Input operation failed. The input "
                                    "file may not contain enough data.")
            m, n = (int(value) for value in np.frombuffer(header, dtype=np.int32))
            if m < 0 or n < 0:
                raise MatrixIOError('read', path, "Invalid dimensions {} x {}."
                                    .format(m, n))

            size = self._data_size(*self._dims(m, n))
            n_bytes = size * self.dtype.itemsize
            try:
                payload = stream.read(n_bytes)
            except (OSError, ValueError) as exc:
                raise MatrixIOError('read', path, "Input operation failed.") from exc
            if len(payload) != n_bytes:
                raise MatrixIOError('read', path, "Input operation failed. The input "
                                    "file may not contain enough data.")

        self.reallocate(m, n)
        if self._data is not None:
            self._data[:] = np.frombuffer(payload, dtype=self.dtype)

    def _format_text(self):
        A = self.to_array()
        return "".join(
            "".join(repr(value.item()) + "\t" for value in row) + "\n" for row in A)

    def write_text(self, target):
        """Write the full matrix in text format to a file name or text stream."""
        with _opened(target, 'w', 'write_text') as (stream, path):
            _check_ready(stream, 'write_text', path)
            try:
                stream.write(self._format_text())
            except (OSError, ValueError) as exc:
                raise MatrixIOError(
                    'write_text', path, "Output operation failed. The output file "
                    "may have been removed or there is no space left on device."
                ) from exc

    def read_text(self, source):
        """Read the matrix in text format from a file name or text stream.

        The number of columns is inferred from the first line. Only the entries
        of the stored triangle are kept by symmetric and triangular layouts. An
        empty source gives an empty matrix.
        """
        with _opened(source, 'r', 'read_text') as (stream, path):
            _check_ready(stream, 'read_text', path)
            try:
                text = stream.read()
            except (OSError, ValueError) as exc:
                raise MatrixIOError('read_text', path,
                                    "Input operation failed.") from exc

        rows = [line.split() for line in text.splitlines() if line.strip()]
        if not rows:
            self.clear()
            return

        n = len(rows[0])
        for index, row in enumerate(rows[1:], start=1):
            if len(row) != n:
                raise MatrixIOError(
                    'read_text', path, "The file should contain same number of "
                    "columns: row {} has {} entries, expected {}."
                    .format(index, len(row), n))
        m = len(rows)
        if self.square and m != n:
            raise MatrixIOError('read_text', path, "{} requires a square matrix, "
                                "got {} x {}.".format(type(self).__name__, m, n))
        try:
            values = np.array([[_parse_scalar(token, self.dtype) for token in row]
                               for row in rows], dtype=self.dtype)
        except ValueError as exc:
            raise MatrixIOError('read_text', path,
                                "Unable to parse matrix entries.") from exc

        self.reallocate(m, n)
        self.assign(values)

    def __str__(self):
        return self._format_text()

    def __repr__(self):
        return "{}({} x {}, order={!r}, lower={}, dtype={})".format(
            type(self).__name__, self._m, self._n, self.order, self.lower, self.dtype)


class _FullStorage:
    def _data_size(self, m, n):
        return m * n

    def _offset(self, i, j, m, n):
        if self.order == 'C':
            return i * n + j
        return j * m + i


class _PackedStorage:
    def _data_size(self, m, n):
        return m * (m + 1) // 2

    def _offset(self, i, j, m, n):
        if self.lower:
            i, j = j, i
        if (self.order == 'C') != self.lower:
            return i * m - i * (i - 1) // 2 + j - i
        return i + j * (j + 1) // 2


class _TriangleStorage:
    def _stored_indices(self, m, n):
        return np.tril_indices(m) if self.lower else np.triu_indices(m)

    def _in_triangle(self, i, j):
        return i >= j if self.lower else i <= j


class _MirroredAccess(_TriangleStorage):
    _mirrored = True

    def _canonical(self, i, j):
        if self._in_triangle(i, j):
            return i, j, False
        return j, i, True


class _ZeroFilledAccess(_TriangleStorage):
    def _canonical(self, i, j):
        if self._in_triangle(i, j):
            return i, j, False
        return None


class DenseMatrix(_FullStorage, Matrix):
    """General ``m x n`` dense matrix."""
    storage = 'dense'
    square = False

    def _dims(self, m, n):
        m = _check_dimension(m)
        n = m if n is None else _check_dimension(n)
        return m, n

    def _stored_indices(self, m, n):
        i, j = np.indices((m, n))
        return i.ravel(), j.ravel()

    def _canonical(self, i, j):
        return i, j, False


class SymmetricMatrix(_FullStorage, _MirroredAccess, Matrix):
    """Symmetric matrix stored in a full ``n x n`` buffer.

    The upper triangle holds the values, the lower one is never read.
    """
    storage = 'symmetric'


class TriangularMatrix(_FullStorage, _ZeroFilledAccess, Matrix):
    """Triangular matrix stored in a full ``n x n`` buffer.

    Parameters
    ----------
    lower : bool, optional
        Whether the lower (True) or the upper (False, default) triangle is
        stored.

    Other parameters are described in `Matrix`.
    """
    storage = 'triangular'

    def __init__(self, m=0, n=None, dtype=float, order='C', lower=False,
                 allocator=None):
        self.lower = lower
        super().__init__(m, n, dtype, order, allocator)

    def rows(self):
        """Return a 2-D view of the buffer in storage order."""
        if self._data is None:
            return np.empty((0, 0), dtype=self.dtype)
        return self._data.reshape(self.shape, order=self.order)


class SymmetricPackedMatrix(_PackedStorage, _MirroredAccess, Matrix):
    """Symmetric matrix with only one triangle stored, ``n (n + 1) / 2`` scalars.

    Parameters
    ----------
    lower : bool, optional
        Whether the lower (True) or the upper (False, default) triangle is
        stored.

    Other parameters are described in `Matrix`.
    """
    storage = 'symmetric_packed'

    def __init__(self, m=0, n=None, dtype=float, order='C', lower=False,
                 allocator=None):
        self.lower = lower
        super().__init__(m, n, dtype, order, allocator)


class HermitianPackedMatrix(SymmetricPackedMatrix):
    """Hermitian matrix in packed storage.

    Elements outside of the stored triangle are the conjugates of the mirrored
    stored elements. Filling with a complex value puts it in the stored
    triangle and its conjugate in the other one.
    """
    storage = 'hermitian_packed'
    _conjugate_mirror = True

    def __init__(self, m=0, n=None, dtype=complex, order='C', lower=False,
                 allocator=None):
        super().__init__(m, n, dtype, order, lower, allocator)


class TriangularPackedMatrix(_PackedStorage, _ZeroFilledAccess, Matrix):
    """Triangular matrix in packed storage, ``n (n + 1) / 2`` scalars."""
    storage = 'triangular_packed'

    def __init__(self, m=0, n=None, dtype=float, order='C', lower=False,
                 allocator=None):
        self.lower = lower
        super().__init__(m, n, dtype, order, allocator)


LAYOUTS = {
    cls.storage: cls for cls in [DenseMatrix, SymmetricMatrix, TriangularMatrix,
                                 SymmetricPackedMatrix, HermitianPackedMatrix,
                                 TriangularPackedMatrix]
}


def create_matrix(storage, m=0, n=None, **kwargs):
    """Create a matrix given its storage tag, see `LAYOUTS`."""
    try:
        cls = LAYOUTS[storage]
    except KeyError:
        raise ValueError("Unknown storage {!r}, must be one of {}"
                         .format(storage, sorted(LAYOUTS))) from None
    return cls(m, n, **kwargs)
