"""
Constants for derivative media generation.

Default settings, supported media types and tool defaults.
"""

# Seconds into the video used when the duration cannot be probed
FALLBACK_OFFSET_SECONDS = 10.0

# Thread pool ceiling for size fan-out
MAX_FANOUT_WORKERS = 4

# Inputs with these extensions are treated as already-extracted frames
STILL_IMAGE_EXTENSIONS = ('.jpg', '.jpeg')

VIDEO_TYPES = [
    'video/mp4',
    'video/mpeg',
    'video/ogg',
    'video/quicktime',
    'video/webm',
    'video/x-ms-asf',
    'video/x-msvideo',
    'video/x-ms-wmv',
    'video/avi',
    'video/mov',
    'video/wmv',
    'video/mkv',
    'video/x-matroska',
    'video/m4v',
    'video/x-m4v',
]

IMAGE_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'image/bmp': 'bmp',
    'image/tiff': 'tiff',
    'image/webp': 'webp',
    'application/pdf': 'pdf',
}

DEFAULT_SETTINGS = {
    'base_path': 'files',
    'tools': {
        'ffmpeg': 'ffmpeg',
        'ffprobe': 'ffprobe',
        'convert': 'convert',
        'gs': 'gs',
    },
    'thumbnails': {
        'enabled': True,
        'percentage': 25,
        'fallback_offset': FALLBACK_OFFSET_SECONDS,
        'resize_tool': 'convert',  # or 'ffmpeg'
        'workers': 1,
        'sizes': [
            {'name': 'large', 'constraint': 800, 'strategy': 'scale'},
            {'name': 'medium', 'constraint': 400, 'strategy': 'scale'},
            {'name': 'square', 'constraint': 200, 'strategy': 'square-crop'},
        ],
        'video_types': VIDEO_TYPES,
    },
    'timeouts': {
        'probe': 30,
        'extract': 120,
        'resize': 60,
        'transcode': 1800,
        'version': 10,
    },
    # Media classes with transcoding enabled
    'enable': ['audio', 'video', 'pdf'],
    # Sources up to this size (MB) are converted live, larger ones are deferred
    'max_size_live': 30,
    'converters': {
        'audio': {
            'mp3/{filename}.mp3': '-c copy -c:a libmp3lame -qscale:a 2',
            'ogg/{filename}.ogg': '-c copy -vn -c:a libopus',
        },
        'video': {
            '# The webm converter is designed for modern browsers. Keep it first if used.': '',
            'webm/{filename}.webm': '-c copy -c:v libvpx-vp9 -crf 30 -b:v 0 -deadline realtime -pix_fmt yuv420p -c:a libopus',
            '# This format keeps the original quality and is compatible with almost all browsers.': '',
            'mp4/{filename}.mp4': "-c copy -c:v libx264 -movflags +faststart -filter:v crop='floor(in_w/2)*2:floor(in_h/2)*2' -crf 22 -level 3 -preset medium -tune film -pix_fmt yuv420p -c:a libmp3lame -qscale:a 2",
        },
        'pdf': {
            '# The default setting "/screen" output the smallest pdf readable on a screen.': '',
            'pdfs/{filename}.pdf': '-dCompatibilityLevel=1.7 -dPDFSETTINGS=/screen',
            '# The default setting "/ebook" output a medium size pdf readable on any device.': '',
            'pdfe/{filename}.pdf': '-dCompatibilityLevel=1.7 -dPDFSETTINGS=/ebook',
        },
    },
}

# Environment variables overriding settings (see settings.load_config)
ENV_OVERRIDES = {
    'DERIVATIVE_MEDIA_BASE_PATH': 'base_path',
    'DERIVATIVE_MEDIA_FFMPEG': 'tools.ffmpeg',
    'DERIVATIVE_MEDIA_FFPROBE': 'tools.ffprobe',
    'DERIVATIVE_MEDIA_CONVERT': 'tools.convert',
    'DERIVATIVE_MEDIA_GS': 'tools.gs',
    'DERIVATIVE_MEDIA_THUMBNAIL_PERCENTAGE': 'thumbnails.percentage',
    'DERIVATIVE_MEDIA_MAX_SIZE_LIVE': 'max_size_live',
}
