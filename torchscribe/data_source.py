"""Interfaces of the minibatch sources and data writers used by OutputWriter, with in-memory versions."""

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Tuple

import torch

from .constants import GAP_SEQUENCE_ID, REQUEST_ALL_SAMPLES
from .data_classes.layout import SequenceInfo, SequenceLayout
from .errors import DataBindingError


class Minibatch:
    """Values and layouts of the input nodes for one minibatch."""

    def __init__(self, inputs: Dict[str, Tuple[torch.Tensor, SequenceLayout]], num_samples: int):
        self.inputs = inputs
        self.num_samples = num_samples
        self._lookup = {name.lower(): name for name in inputs}

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._lookup

    def __getitem__(self, name: str) -> Tuple[torch.Tensor, SequenceLayout]:
        if name.lower() not in self._lookup:
            raise DataBindingError(f"The minibatch has no data for input node '{name}'.")
        return self.inputs[self._lookup[name.lower()]]

    def __repr__(self):
        return f"Minibatch({', '.join(self.inputs)}; {self.num_samples} samples)"


class DataSource(ABC):
    """Supplies minibatches of input node values."""

    @abstractmethod
    def start_minibatch_loop(self, batch_size: int, requested_samples: int = REQUEST_ALL_SAMPLES):
        """Starts (or restarts) reading, with a minibatch size hint and a cap on the total samples."""

    @abstractmethod
    def get_minibatch(self, input_names: Iterable[str]) -> Optional[Minibatch]:
        """Returns the next minibatch for the given input nodes, or None when the data is exhausted."""

    def data_end(self):
        """Called after each minibatch is consumed, for reader-specific end-of-sentence bookkeeping."""

    def set_num_parallel_sequences(self, num_parallel_sequences: int):
        """Limits how many sequences are packed side by side in one minibatch."""


class DataWriter(ABC):
    """Receives the evaluated node values of each minibatch."""

    supports_multi_utterances = True

    @abstractmethod
    def save_data(self, records: Dict[str, torch.Tensor], num_samples: int):
        """Saves the node values of one minibatch."""


class InMemorySequenceSource(DataSource):
    """Packs in-memory sequences into minibatches of parallel sequences.

    Each input name maps to a list of sequences; sequence i of every input must have the same number
    of time steps. A sequence is a (time steps, dim) tensor, or a 1-d tensor of time steps for dim 1.

    Args:
        sequences: Dict mapping input node names to lists of sequences.
        num_parallel_sequences: Most sequences to pack side by side in one minibatch.
    """

    def __init__(self, sequences: Dict[str, List[torch.Tensor]], num_parallel_sequences: int = 1):
        if len(sequences) == 0:
            raise ValueError("InMemorySequenceSource needs at least one input.")
        self.sequences: Dict[str, List[torch.Tensor]] = OrderedDict()
        for name, seqs in sequences.items():
            self.sequences[name] = [seq.reshape(-1, 1) if seq.dim() == 1 else seq for seq in seqs]

        seq_lengths = None
        for name, seqs in self.sequences.items():
            lengths = [seq.shape[0] for seq in seqs]
            if seq_lengths is None:
                seq_lengths = lengths
            elif lengths != seq_lengths:
                raise ValueError(
                    f"Sequences of input '{name}' don't have the same number or lengths as the other inputs."
                )
        self.seq_lengths: List[int] = seq_lengths
        self.max_parallel_sequences = num_parallel_sequences
        self.num_parallel_sequences = num_parallel_sequences

        self.batch_size = 1
        self.requested_samples = REQUEST_ALL_SAMPLES
        self._next_seq = 0
        self._samples_delivered = 0
        self.num_minibatches_consumed = 0
        self._lookup = {name.lower(): name for name in self.sequences}

    def set_num_parallel_sequences(self, num_parallel_sequences: int):
        self.num_parallel_sequences = num_parallel_sequences

    def start_minibatch_loop(self, batch_size: int, requested_samples: int = REQUEST_ALL_SAMPLES):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1.")
        self.batch_size = batch_size
        self.requested_samples = requested_samples
        self.num_parallel_sequences = self.max_parallel_sequences
        self._next_seq = 0
        self._samples_delivered = 0
        self.num_minibatches_consumed = 0

    def _take_sequences(self) -> List[int]:
        """Indices of the next sequences to pack: at most num_parallel_sequences, and more than one
        only while the padded minibatch stays within batch_size samples."""
        taken = []
        max_len = 0
        ind = self._next_seq
        while ind < len(self.seq_lengths) and len(taken) < self.num_parallel_sequences:
            new_max_len = max(max_len, self.seq_lengths[ind])
            if len(taken) > 0 and new_max_len * (len(taken) + 1) > self.batch_size:
                break
            taken.append(ind)
            max_len = new_max_len
            ind += 1
        return taken

    def get_minibatch(self, input_names: Iterable[str]) -> Optional[Minibatch]:
        input_names = list(input_names)
        for name in input_names:
            if name.lower() not in self._lookup:
                raise DataBindingError(f"The data source has no data for input node '{name}'.")
        if self._samples_delivered >= self.requested_samples:
            return None
        seq_inds = self._take_sequences()
        if len(seq_inds) == 0:
            return None
        self._next_seq = seq_inds[-1] + 1

        num_parallel = len(seq_inds)
        num_time_steps = max(self.seq_lengths[i] for i in seq_inds)
        layout = SequenceLayout(num_parallel, num_time_steps)
        for s, seq_ind in enumerate(seq_inds):
            seq_len = self.seq_lengths[seq_ind]
            layout.add_sequence(SequenceInfo(seq_id=seq_ind, s=s, t_begin=0, t_end=seq_len))
            if seq_len < num_time_steps:
                layout.add_sequence(SequenceInfo(seq_id=GAP_SEQUENCE_ID, s=s, t_begin=seq_len, t_end=num_time_steps))

        inputs = OrderedDict()
        for name in input_names:
            seqs = self.sequences[self._lookup[name.lower()]]
            first = seqs[seq_inds[0]]
            dim = first.shape[1]
            # (time steps, parallel slots, dim) -> (dim, columns) with column t * P + s
            packed = torch.zeros(num_time_steps, num_parallel, dim, dtype=first.dtype)
            for s, seq_ind in enumerate(seq_inds):
                seq = seqs[seq_ind]
                packed[: seq.shape[0], s, :] = seq
            inputs[name] = (packed.reshape(num_time_steps * num_parallel, dim).T.contiguous(), layout)

        num_samples = layout.get_actual_num_samples()
        self._samples_delivered += num_samples
        return Minibatch(inputs, num_samples)

    def data_end(self):
        self.num_minibatches_consumed += 1


class MemoryDataWriter(DataWriter):
    """Keeps a copy of every saved minibatch in memory.

    Args:
        supports_multi_utterances: Whether the writer can handle several sequences per minibatch.
    """

    def __init__(self, supports_multi_utterances: bool = True):
        self.supports_multi_utterances = supports_multi_utterances
        self.saved_records: List[Dict[str, torch.Tensor]] = []
        self.saved_num_samples: List[int] = []

    def save_data(self, records: Dict[str, torch.Tensor], num_samples: int):
        self.saved_records.append({name: t.detach().clone() for name, t in records.items()})
        self.saved_num_samples.append(num_samples)

    def __len__(self):
        return len(self.saved_records)
