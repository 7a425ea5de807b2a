# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
ID3v2 frame, genre and picture-type tables

Copyright 2025 DNAi inc.
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional


class FrameKind(Enum):
    """How a frame body is laid out."""
    TEXT = 'text'
    URL = 'url'
    USER_TEXT = 'user_text'
    USER_URL = 'user_url'
    GENRE = 'genre'
    COMMENT = 'comment'
    PRIVATE = 'private'
    PICTURE = 'picture'
    UNIQUE_ID = 'unique_id'
    PLAY_COUNTER = 'play_counter'
    POPULARIMETER = 'popularimeter'
    BINARY = 'binary'


class FrameInfo(NamedTuple):
    name: str
    kind: FrameKind
    has_encoding: bool


def _text(name: str) -> FrameInfo:
    return FrameInfo(name, FrameKind.TEXT, True)


def _url(name: str) -> FrameInfo:
    return FrameInfo(name, FrameKind.URL, False)


def _binary(name: str) -> FrameInfo:
    return FrameInfo(name, FrameKind.BINARY, False)


# ID3v2.3 and ID3v2.4 frames
FRAME_TABLE: Dict[str, FrameInfo] = {
    'AENC': _binary('Audio encryption'),
    'APIC': FrameInfo('Attached picture', FrameKind.PICTURE, True),
    'ASPI': _binary('Audio seek point index'),
    'COMM': FrameInfo('Comments', FrameKind.COMMENT, True),
    'COMR': _binary('Commercial frame'),
    'ENCR': _binary('Encryption method registration'),
    'EQU2': _binary('Equalisation (2)'),
    'EQUA': _binary('Equalization'),
    'ETCO': _binary('Event timing codes'),
    'GEOB': _binary('General encapsulated object'),
    'GRID': _binary('Group identification registration'),
    'IPLS': _text('Involved people list'),
    'LINK': _binary('Linked information'),
    'MCDI': _binary('Music CD identifier'),
    'MLLT': _binary('MPEG location lookup table'),
    'OWNE': _binary('Ownership frame'),
    'PCNT': FrameInfo('Play counter', FrameKind.PLAY_COUNTER, False),
    'POPM': FrameInfo('Popularimeter', FrameKind.POPULARIMETER, False),
    'POSS': _binary('Position synchronisation frame'),
    'PRIV': FrameInfo('Private frame', FrameKind.PRIVATE, False),
    'RBUF': _binary('Recommended buffer size'),
    'RVA2': _binary('Relative volume adjustment (2)'),
    'RVAD': _binary('Relative volume adjustment'),
    'RVRB': _binary('Reverb'),
    'SEEK': _binary('Seek frame'),
    'SIGN': _binary('Signature frame'),
    'SYLT': _binary('Synchronised lyric/text'),
    'SYTC': _binary('Synchronised tempo codes'),
    'TALB': _text('Album'),
    'TBPM': _text('BPM'),
    'TCMP': _text('iTunes compilation flag'),
    'TCOM': _text('Composer'),
    'TCON': FrameInfo('Content type', FrameKind.GENRE, True),
    'TCOP': _text('Copyright message'),
    'TDAT': _text('Date'),
    'TDEN': _text('Encoding time'),
    'TDLY': _text('Playlist delay'),
    'TDOR': _text('Original release time'),
    'TDRC': _text('Recording time'),
    'TDRL': _text('Release time'),
    'TDTG': _text('Tagging time'),
    'TENC': _text('Encoded by'),
    'TEXT': _text('Lyricist/Text writer'),
    'TFLT': _text('File type'),
    'TIME': _text('Time'),
    'TIPL': _text('Involved people list'),
    'TIT1': _text('Content group description'),
    'TIT2': _text('Title'),
    'TIT3': _text('Subtitle'),
    'TKEY': _text('Initial key'),
    'TLAN': _text('Language'),
    'TLEN': _text('Length'),
    'TMCL': _text('Musician credits list'),
    'TMED': _text('Media type'),
    'TMOO': _text('Mood'),
    'TOAL': _text('Original album'),
    'TOFN': _text('Original filename'),
    'TOLY': _text('Original lyricist'),
    'TOPE': _text('Original artist'),
    'TORY': _text('Original release year'),
    'TOWN': _text('File owner/licensee'),
    'TPE1': _text('Lead performer'),
    'TPE2': _text('Band/orchestra/accompaniment'),
    'TPE3': _text('Conductor'),
    'TPE4': _text('Interpreted, remixed, or otherwise modified by'),
    'TPOS': _text('Part of a set'),
    'TPRO': _text('Produced notice'),
    'TPUB': _text('Publisher'),
    'TRCK': _text('Track number'),
    'TRDA': _text('Recording dates'),
    'TRSN': _text('Internet radio station name'),
    'TRSO': _text('Internet radio station owner'),
    'TSIZ': _text('Size'),
    'TSO2': _text('Album artist sort order'),
    'TSOA': _text('Album sort order'),
    'TSOC': _text('Composer sort order'),
    'TSOP': _text('Performer sort order'),
    'TSOT': _text('Title sort order'),
    'TSRC': _text('ISRC'),
    'TSSE': _text('Software/Hardware and settings used for encoding'),
    'TSST': _text('Set subtitle'),
    'TXXX': FrameInfo('User defined text', FrameKind.USER_TEXT, True),
    'TYER': _text('Year'),
    'UFID': FrameInfo('Unique file identifier', FrameKind.UNIQUE_ID, False),
    'USER': _binary('Terms of use'),
    'USLT': FrameInfo('Unsynchronised lyric/text transcription', FrameKind.COMMENT, True),
    'WCOM': _url('Commercial information'),
    'WCOP': _url('Copyright/Legal information'),
    'WOAF': _url('Official audio file webpage'),
    'WOAR': _url('Official artist/performer webpage'),
    'WOAS': _url('Official audio source webpage'),
    'WORS': _url('Official Internet radio station homepage'),
    'WPAY': _url('Payment'),
    'WPUB': _url('Publishers official webpage'),
    'WXXX': FrameInfo('User defined URL link', FrameKind.USER_URL, True),
}


# ID3v1 genres with the Winamp extensions, indices 0-125
GENRES = [
    'Blues', 'Classic Rock', 'Country', 'Dance', 'Disco', 'Funk', 'Grunge',
    'Hip-Hop', 'Jazz', 'Metal', 'New Age', 'Oldies', 'Other', 'Pop', 'R&B',
    'Rap', 'Reggae', 'Rock', 'Techno', 'Industrial', 'Alternative', 'Ska',
    'Death Metal', 'Pranks', 'Soundtrack', 'Euro-Techno', 'Ambient',
    'Trip-Hop', 'Vocal', 'Jazz+Funk', 'Fusion', 'Trance', 'Classical',
    'Instrumental', 'Acid', 'House', 'Game', 'Sound Clip', 'Gospel', 'Noise',
    'AlternRock', 'Bass', 'Soul', 'Punk', 'Space', 'Meditative',
    'Instrumental Pop', 'Instrumental Rock', 'Ethnic', 'Gothic', 'Darkwave',
    'Techno-Industrial', 'Electronic', 'Pop-Folk', 'Eurodance', 'Dream',
    'Southern Rock', 'Comedy', 'Cult', 'Gangsta', 'Top 40', 'Christian Rap',
    'Pop/Funk', 'Jungle', 'Native American', 'Cabaret', 'New Wave',
    'Psychedelic', 'Rave', 'Showtunes', 'Trailer', 'Lo-Fi', 'Tribal',
    'Acid Punk', 'Acid Jazz', 'Polka', 'Retro', 'Musical', 'Rock & Roll',
    'Hard Rock', 'Folk', 'Folk-Rock', 'National Folk', 'Swing',
    'Fast Fusion', 'Bebob', 'Latin', 'Revival', 'Celtic', 'Bluegrass',
    'Avantgarde', 'Gothic Rock', 'Progressive Rock', 'Psychedelic Rock',
    'Symphonic Rock', 'Slow Rock', 'Big Band', 'Chorus', 'Easy Listening',
    'Acoustic', 'Humour', 'Speech', 'Chanson', 'Opera', 'Chamber Music',
    'Sonata', 'Symphony', 'Booty Bass', 'Primus', 'Porn Groove', 'Satire',
    'Slow Jam', 'Club', 'Tango', 'Samba', 'Folklore', 'Ballad',
    'Power Ballad', 'Rhythmic Soul', 'Freestyle', 'Duet', 'Punk Rock',
    'Drum Solo', 'A capella', 'Euro-House', 'Dance Hall',
]

# Special TCON references
GENRE_REFINEMENTS = {
    'RX': 'Remix',
    'CR': 'Cover',
}

# APIC picture types
PICTURE_TYPES = [
    'Other', '32x32 pixels file icon', 'Other file icon', 'Cover (front)',
    'Cover (back)', 'Leaflet page', 'Media', 'Lead artist/lead performer/soloist',
    'Artist/performer', 'Conductor', 'Band/Orchestra', 'Composer',
    'Lyricist/text writer', 'Recording Location', 'During recording',
    'During performance', 'Movie/video screen capture', 'A bright coloured fish',
    'Illustration', 'Band/artist logotype', 'Publisher/Studio logotype',
]


def get_frame_info(frame_id: str) -> Optional[FrameInfo]:
    """
    Look up a frame id.

    Unlisted T*** and W*** ids still follow the text and URL layouts.
    Returns None for anything else.
    """
    info = FRAME_TABLE.get(frame_id)
    if info is not None:
        return info
    if frame_id.startswith('T'):
        return FrameInfo(frame_id, FrameKind.TEXT, True)
    if frame_id.startswith('W'):
        return FrameInfo(frame_id, FrameKind.URL, False)
    return None


def get_genre_name(index: int) -> Optional[str]:
    if 0 <= index < len(GENRES):
        return GENRES[index]
    return None


def get_picture_type_name(index: int) -> str:
    if 0 <= index < len(PICTURE_TYPES):
        return PICTURE_TYPES[index]
    return f"Unknown ({index})"


# ID3v2.2 three-character ids with a v2.3 equivalent of the same layout
V22_FRAME_IDS = {
    'COM': 'COMM',
    'TAL': 'TALB',
    'TBP': 'TBPM',
    'TCM': 'TCOM',
    'TCO': 'TCON',
    'TCR': 'TCOP',
    'TEN': 'TENC',
    'TP1': 'TPE1',
    'TP2': 'TPE2',
    'TP3': 'TPE3',
    'TPA': 'TPOS',
    'TRK': 'TRCK',
    'TSS': 'TSSE',
    'TT1': 'TIT1',
    'TT2': 'TIT2',
    'TT3': 'TIT3',
    'TXT': 'TEXT',
    'TXX': 'TXXX',
    'TYE': 'TYER',
    'UFI': 'UFID',
    'ULT': 'USLT',
    'WXX': 'WXXX',
    'CNT': 'PCNT',
    'POP': 'POPM',
}
