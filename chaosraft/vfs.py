"""
In-memory filesystem for running the system under test without a disk.

MemFS implements chaosraft.interfaces.IFS. Nothing survives the process and
reset() empties the filesystem, so every test run starts from the same state.

In strict mode MemFS also remembers the content of each file as of its last
sync(), and a newly created or renamed file only survives once its directory
was synced with sync_dir(). reset_to_synced_state() then throws away every
unsynced write, which is what a power loss would do to a real disk.
"""
import io
import posixpath
import threading

from collections import namedtuple
from logzero import logger

from typing import List

from chaosraft.interfaces import IFile, IFS

FileInfo = namedtuple('FileInfo', ['name', 'size', 'is_dir'])


def _clean(name: str) -> str:
    return posixpath.normpath('/' + name.lstrip('/'))


class _Node(object):
    def __init__(self, is_dir: bool):
        self.is_dir = is_dir
        self.data = bytearray()
        self.synced_data = None if is_dir else bytes()


class MemFile(IFile):
    """
    A handle on a MemFS file. Reads and writes go straight to the shared
    node, so two handles on the same file see each other's writes.
    """

    def __init__(self, fs: 'MemFS', name: str, node: _Node, pos: int = 0):
        self._fs = fs
        self._name = name
        self._node = node
        self._pos = pos
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    def _check_open(self):
        if self._closed:
            raise ValueError("I/O operation on closed file {}".format(
                self._name))

    def read(self, size: int = -1) -> bytes:
        self._check_open()
        with self._fs._mu:
            data = self._node.data
            if size is None or size < 0:
                end = len(data)
            else:
                end = min(len(data), self._pos + size)
            chunk = bytes(data[self._pos:end])
            self._pos = max(self._pos, end)
        return chunk

    def write(self, data: bytes) -> int:
        self._check_open()
        with self._fs._mu:
            buf = self._node.data
            if self._pos > len(buf):
                buf.extend(b'\x00' * (self._pos - len(buf)))
            buf[self._pos:self._pos + len(data)] = data
            self._pos += len(data)
        return len(data)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        self._check_open()
        with self._fs._mu:
            if whence == io.SEEK_SET:
                pos = offset
            elif whence == io.SEEK_CUR:
                pos = self._pos + offset
            elif whence == io.SEEK_END:
                pos = len(self._node.data) + offset
            else:
                raise ValueError("invalid whence {}".format(whence))
            if pos < 0:
                raise ValueError("negative seek position {}".format(pos))
            self._pos = pos
        return pos

    def sync(self) -> None:
        self._check_open()
        with self._fs._mu:
            self._node.synced_data = bytes(self._node.data)

    def close(self) -> None:
        self._closed = True


class MemFS(IFS):
    """
    Thread-safe in-memory IFS.
    """

    def __init__(self, strict: bool = False):
        self._strict = strict
        self._mu = threading.RLock()
        self._nodes = {'/': _Node(is_dir=True)}
        # Names whose creation has not been made durable by a sync yet.
        self._unsynced_names = set()

    @property
    def strict(self) -> bool:
        return self._strict

    def _parent_must_exist(self, name: str):
        parent = posixpath.dirname(name)
        node = self._nodes.get(parent)
        if node is None or not node.is_dir:
            raise FileNotFoundError("parent directory of {} does not "
                                    "exist".format(name))

    def _file_node(self, name: str) -> _Node:
        node = self._nodes.get(name)
        if node is None:
            raise FileNotFoundError(name)
        if node.is_dir:
            raise IsADirectoryError(name)
        return node

    def create(self, name: str) -> MemFile:
        """
        Create (or truncate) a file and open it for reading and writing.
        """
        name = _clean(name)
        with self._mu:
            self._parent_must_exist(name)
            existing = self._nodes.get(name)
            if existing is not None and existing.is_dir:
                raise IsADirectoryError(name)
            if existing is not None:
                # truncate in place so handles opened earlier stay attached
                del existing.data[:]
                node = existing
            else:
                node = _Node(is_dir=False)
                self._nodes[name] = node
                self._unsynced_names.add(name)
        return MemFile(self, name, node)

    def open(self, name: str) -> MemFile:
        name = _clean(name)
        with self._mu:
            node = self._file_node(name)
        return MemFile(self, name, node)

    def open_for_append(self, name: str) -> MemFile:
        name = _clean(name)
        with self._mu:
            node = self._file_node(name)
            pos = len(node.data)
        return MemFile(self, name, node, pos=pos)

    def remove(self, name: str) -> None:
        name = _clean(name)
        with self._mu:
            node = self._nodes.get(name)
            if node is None:
                raise FileNotFoundError(name)
            if node.is_dir and self.list(name):
                raise OSError("directory {} is not empty".format(name))
            del self._nodes[name]
            self._unsynced_names.discard(name)

    def remove_all(self, name: str) -> None:
        name = _clean(name)
        prefix = name.rstrip('/') + '/'
        with self._mu:
            for n in [n for n in self._nodes
                      if n == name or n.startswith(prefix)]:
                if n == '/':
                    continue
                del self._nodes[n]
                self._unsynced_names.discard(n)

    def rename(self, old_name: str, new_name: str) -> None:
        old_name = _clean(old_name)
        new_name = _clean(new_name)
        with self._mu:
            node = self._nodes.get(old_name)
            if node is None:
                raise FileNotFoundError(old_name)
            self._parent_must_exist(new_name)
            prefix = old_name.rstrip('/') + '/'
            moved = {}
            for n in list(self._nodes):
                if n == old_name:
                    moved[new_name] = self._nodes.pop(n)
                elif n.startswith(prefix):
                    moved[new_name + n[len(old_name):]] = self._nodes.pop(n)
            self._nodes.update(moved)
            unsynced = set()
            for n in self._unsynced_names:
                if n == old_name or n.startswith(prefix):
                    unsynced.add(new_name + n[len(old_name):])
                else:
                    unsynced.add(n)
            unsynced.add(new_name)
            self._unsynced_names = unsynced

    def mkdir_all(self, name: str) -> None:
        name = _clean(name)
        with self._mu:
            path = '/'
            for part in [p for p in name.split('/') if p]:
                path = posixpath.join(path, part)
                node = self._nodes.get(path)
                if node is None:
                    self._nodes[path] = _Node(is_dir=True)
                elif not node.is_dir:
                    raise NotADirectoryError(path)

    def list(self, name: str) -> List[str]:
        """
        Return the sorted names of the direct children of a directory.
        """
        name = _clean(name)
        prefix = name.rstrip('/') + '/'
        with self._mu:
            node = self._nodes.get(name)
            if node is None:
                raise FileNotFoundError(name)
            if not node.is_dir:
                raise NotADirectoryError(name)
            children = [n[len(prefix):] for n in self._nodes
                        if n != name and n.startswith(prefix)
                        and '/' not in n[len(prefix):]]
        return sorted(children)

    def exists(self, name: str) -> bool:
        with self._mu:
            return _clean(name) in self._nodes

    def stat(self, name: str) -> FileInfo:
        name = _clean(name)
        with self._mu:
            node = self._nodes.get(name)
            if node is None:
                raise FileNotFoundError(name)
            return FileInfo(name=posixpath.basename(name) or '/',
                            size=len(node.data), is_dir=node.is_dir)

    def sync_dir(self, name: str) -> None:
        """
        Make the creation and renaming of files within a directory durable.
        """
        prefix = _clean(name).rstrip('/') + '/'
        with self._mu:
            self._unsynced_names = set(
                n for n in self._unsynced_names
                if not (n.startswith(prefix) and '/' not in n[len(prefix):]))

    def reset(self) -> None:
        """
        Remove everything.
        """
        with self._mu:
            self._nodes = {'/': _Node(is_dir=True)}
            self._unsynced_names = set()
        logger.debug("memfs reset")

    def reset_to_synced_state(self) -> None:
        """
        Drop every write that was not synced. Only available in strict mode.
        """
        if not self._strict:
            raise RuntimeError("reset_to_synced_state requires a strict MemFS")
        with self._mu:
            for name in self._unsynced_names:
                prefix = name.rstrip('/') + '/'
                for n in [n for n in self._nodes
                          if n == name or n.startswith(prefix)]:
                    del self._nodes[n]
            self._unsynced_names = set()
            for node in self._nodes.values():
                if not node.is_dir:
                    node.data = bytearray(node.synced_data)
        logger.info("memfs reset to its last synced state")


def get_test_fs() -> MemFS:
    """
    Return a fresh MemFS for one system instance under test.
    """
    return MemFS()
