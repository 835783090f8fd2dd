"""
=============================================================================
MIME TYPE TABLE
=============================================================================

Maps fixture file extensions to the Content-Type the server sends for them.

=============================================================================
LOOKUP RULES
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │  filename            extension     Content-Type                    │
    │  ───────────────     ─────────     ──────────────────────────────  │
    │  empty.html          html          text/html                       │
    │  simple.json         json          application/json                │
    │  archive.tar.gz      gz            application/gzip                │
    │  Photo.PNG           PNG           application/octet-stream  (!)   │
    │  README              README        application/octet-stream        │
    │  data.xyz123         xyz123        application/octet-stream        │
    └────────────────────────────────────────────────────────────────────┘

1. The extension is everything after the LAST dot. A name without a dot
   is looked up as a whole.
2. Lookup is case-sensitive: browser tests rely on "PNG" not being "png".
3. Unknown extensions fall back to application/octet-stream, which makes
   browsers download rather than render.

No charset parameter is appended; fixtures are served with the bare type.

=============================================================================
"""

from pathlib import PurePosixPath
from typing import Dict, Union


DEFAULT_MIME_TYPE = "application/octet-stream"


# =============================================================================
# MIME TYPE DATABASE
# =============================================================================
#
# Keys are extensions WITHOUT the leading dot, exactly as they appear in
# file names. Keep the table sorted.
#
# =============================================================================

MIME_TYPES: Dict[str, str] = {
    "ai": "application/postscript",
    "apng": "image/apng",
    "appcache": "text/cache-manifest",
    "au": "audio/basic",
    "bmp": "image/bmp",
    "cer": "application/pkix-cert",
    "cgm": "image/cgm",
    "coffee": "text/coffeescript",
    "conf": "text/plain",
    "crl": "application/pkix-crl",
    "css": "text/css",
    "csv": "text/csv",
    "def": "text/plain",
    "doc": "application/msword",
    "dot": "application/msword",
    "drle": "image/dicom-rle",
    "dtd": "application/xml-dtd",
    "ear": "application/java-archive",
    "emf": "image/emf",
    "eps": "application/postscript",
    "exr": "image/aces",
    "fits": "image/fits",
    "g3": "image/g3fax",
    "gbr": "application/rpki-ghostbusters",
    "gif": "image/gif",
    "glb": "model/gltf-binary",
    "gltf": "model/gltf+json",
    "gz": "application/gzip",
    "h261": "video/h261",
    "h263": "video/h263",
    "h264": "video/h264",
    "heic": "image/heic",
    "heics": "image/heic-sequence",
    "heif": "image/heif",
    "heifs": "image/heif-sequence",
    "htm": "text/html",
    "html": "text/html",
    "ics": "text/calendar",
    "ief": "image/ief",
    "ifb": "text/calendar",
    "iges": "model/iges",
    "igs": "model/iges",
    "in": "text/plain",
    "ini": "text/plain",
    "jade": "text/jade",
    "jar": "application/java-archive",
    "jls": "image/jls",
    "jp2": "image/jp2",
    "jpe": "image/jpeg",
    "jpeg": "image/jpeg",
    "jpf": "image/jpx",
    "jpg": "image/jpeg",
    "jpg2": "image/jp2",
    "jpgm": "video/jpm",
    "jpgv": "video/jpeg",
    "jpm": "image/jpm",
    "jpx": "image/jpx",
    "js": "application/javascript",
    "json": "application/json",
    "json5": "application/json5",
    "jsx": "text/jsx",
    "jxr": "image/jxr",
    "kar": "audio/midi",
    "ktx": "image/ktx",
    "less": "text/less",
    "list": "text/plain",
    "litcoffee": "text/coffeescript",
    "log": "text/plain",
    "m1v": "video/mpeg",
    "m21": "application/mp21",
    "m2a": "audio/mpeg",
    "m2v": "video/mpeg",
    "m3a": "audio/mpeg",
    "m4a": "audio/mp4",
    "m4p": "application/mp4",
    "man": "text/troff",
    "manifest": "text/cache-manifest",
    "markdown": "text/markdown",
    "mathml": "application/mathml+xml",
    "md": "text/markdown",
    "mdx": "text/mdx",
    "me": "text/troff",
    "mesh": "model/mesh",
    "mft": "application/rpki-manifest",
    "mid": "audio/midi",
    "midi": "audio/midi",
    "mj2": "video/mj2",
    "mjp2": "video/mj2",
    "mjs": "application/javascript",
    "mml": "text/mathml",
    "mov": "video/quicktime",
    "mp2": "audio/mpeg",
    "mp21": "application/mp21",
    "mp2a": "audio/mpeg",
    "mp3": "audio/mpeg",
    "mp4": "video/mp4",
    "mp4a": "audio/mp4",
    "mp4s": "application/mp4",
    "mp4v": "video/mp4",
    "mpe": "video/mpeg",
    "mpeg": "video/mpeg",
    "mpg": "video/mpeg",
    "mpg4": "video/mp4",
    "mpga": "audio/mpeg",
    "mrc": "application/marc",
    "ms": "text/troff",
    "msh": "model/mesh",
    "n3": "text/n3",
    "oga": "audio/ogg",
    "ogg": "audio/ogg",
    "ogv": "video/ogg",
    "ogx": "application/ogg",
    "otf": "font/otf",
    "p10": "application/pkcs10",
    "p7c": "application/pkcs7-mime",
    "p7m": "application/pkcs7-mime",
    "p7s": "application/pkcs7-signature",
    "p8": "application/pkcs8",
    "pdf": "application/pdf",
    "pki": "application/pkixcmp",
    "pkipath": "application/pkix-pkipath",
    "png": "image/png",
    "ps": "application/postscript",
    "pskcxml": "application/pskc+xml",
    "qt": "video/quicktime",
    "rmi": "audio/midi",
    "rng": "application/xml",
    "roa": "application/rpki-roa",
    "roff": "text/troff",
    "rsd": "application/rsd+xml",
    "rss": "application/rss+xml",
    "rtf": "application/rtf",
    "rtx": "text/richtext",
    "s3m": "audio/s3m",
    "sgi": "image/sgi",
    "sgm": "text/sgml",
    "sgml": "text/sgml",
    "shex": "text/shex",
    "shtml": "text/html",
    "sil": "audio/silk",
    "silo": "model/mesh",
    "slim": "text/slim",
    "slm": "text/slim",
    "snd": "audio/basic",
    "spx": "audio/ogg",
    "stl": "model/stl",
    "styl": "text/stylus",
    "stylus": "text/stylus",
    "svg": "image/svg+xml",
    "svgz": "image/svg+xml",
    "t": "text/troff",
    "t38": "image/t38",
    "text": "text/plain",
    "tfx": "image/tiff-fx",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "tr": "text/troff",
    "ts": "video/mp2t",
    "tsv": "text/tab-separated-values",
    "ttc": "font/collection",
    "ttf": "font/ttf",
    "ttl": "text/turtle",
    "txt": "text/plain",
    "uri": "text/uri-list",
    "uris": "text/uri-list",
    "urls": "text/uri-list",
    "vcard": "text/vcard",
    "vrml": "model/vrml",
    "vtt": "text/vtt",
    "war": "application/java-archive",
    "wasm": "application/wasm",
    "wav": "audio/wav",
    "weba": "audio/webm",
    "webm": "video/webm",
    "webmanifest": "application/manifest+json",
    "webp": "image/webp",
    "wmf": "image/wmf",
    "woff": "font/woff",
    "woff2": "font/woff2",
    "wrl": "model/vrml",
    "x3d": "model/x3d+xml",
    "x3db": "model/x3d+fastinfoset",
    "x3dbz": "model/x3d+binary",
    "x3dv": "model/x3d-vrml",
    "x3dvz": "model/x3d+vrml",
    "x3dz": "model/x3d+xml",
    "xaml": "application/xaml+xml",
    "xht": "application/xhtml+xml",
    "xhtml": "application/xhtml+xml",
    "xm": "audio/xm",
    "xml": "text/xml",
    "xsd": "application/xml",
    "xsl": "application/xml",
    "xslt": "application/xslt+xml",
    "yaml": "text/yaml",
    "yml": "text/yaml",
    "zip": "application/zip",
}


def get_extension(filename: Union[str, PurePosixPath]) -> str:
    """
    Return the lookup key for a file name.

    >>> get_extension("/resources/simple.json")
    'json'
    >>> get_extension("Makefile")
    'Makefile'
    """
    name = PurePosixPath(str(filename)).name
    dot = name.rfind(".")
    return name if dot == -1 else name[dot + 1:]


def get_content_type(filename: Union[str, PurePosixPath]) -> str:
    """
    Get the Content-Type for a fixture file.

    Args:
        filename: File name or path. Only the last path segment matters.

    Returns:
        The mapped MIME type, or DEFAULT_MIME_TYPE for unknown extensions.
    """
    return MIME_TYPES.get(get_extension(filename), DEFAULT_MIME_TYPE)
