"""
Example document builder.

Builds a small spell definition that uses every type tag at least once,
plus a dictionary naming most of its hashes. Tests, demos and the docs
use it as a known-good fixture.
"""
from binprop.hashing import fnv1a, xxh64
from binprop.model import Document, Entry, Patch
from binprop.unhash import HashDictionary
from binprop.values import (
    I8,
    I16,
    I32,
    I64,
    RGBA,
    U8,
    U16,
    U32,
    U64,
    Bool,
    ByteArray,
    Embedded,
    F32,
    Field,
    Flag,
    Hash,
    LegacyList,
    Link,
    List,
    Map,
    Mat4x4,
    NoneValue,
    Option,
    Pointer,
    Reference,
    String,
    Tag,
    Vec2,
    Vec3,
    Vec4,
)

EXAMPLE_NAMES = [
    "SpellObject",
    "SpellData",
    "CastTiming",
    "VfxSystemDefinitionData",
    "Characters/Annie/Spells/Fireball",
    "mName",
    "mData",
    "mRange",
    "mEnabled",
    "mLevel",
    "mTier",
    "mCharges",
    "mCooldownMs",
    "mManaCost",
    "mBuffId",
    "mLastCast",
    "mSeed",
    "mSize",
    "mOffset",
    "mArea",
    "mTint",
    "mTransform",
    "mColor",
    "mTags",
    "mEffect",
    "mIcon",
    "mBlob",
    "mLevels",
    "mOldLevels",
    "mTiming",
    "mDelay",
    "mTarget",
    "mCurve",
    "mFlags",
    "mEmpty",
    "mNothing",
    "mRanges",
]

EXAMPLE_LINKS = [
    "ASSETS/Characters/Annie/Skins/Base/Particles/Fireball.troy",
    "ASSETS/Characters/Annie/HUD/Icons2D/Fireball.dds",
]

LINKED_FILE = "DATA/Characters/Annie/Annie.bin"


def example_dictionary() -> HashDictionary:
    """
    Dictionary for build_example_document().

    mSpellRef, mUnused and the hex-only entry are left out on purpose, so
    the document always has some unresolved names.
    """
    return HashDictionary.from_names(EXAMPLE_NAMES, EXAMPLE_LINKS)


def _field(name: str, value) -> Field:
    return Field(fnv1a(name), value)


def build_example_spell() -> Entry:
    identity = (1.0, 0.0, 0.0, 0.0,
                0.0, 1.0, 0.0, 0.0,
                0.0, 0.0, 1.0, 0.0,
                0.0, 0.0, 0.0, 1.0)

    timing = Embedded(fnv1a("CastTiming"), [
        _field("mDelay", F32(0.25)),
        _field("mTarget", Hash(fnv1a("Characters/Annie/Spells/Fireball"))),
    ])

    data = Pointer(fnv1a("SpellData"), [
        _field("mRange", F32(550.0)),
        _field("mTiming", timing),
        _field("mEmpty", Pointer(0)),
    ])

    return Entry(fnv1a("SpellObject"), [
        _field("mName", String("Fireball")),
        _field("mData", data),
        _field("mEnabled", Bool(True)),
        _field("mLevel", I8(-3)),
        _field("mTier", U8(200)),
        _field("mCharges", I16(-1200)),
        _field("mCooldownMs", U16(8000)),
        _field("mManaCost", I32(-70)),
        _field("mBuffId", U32(4000000000)),
        _field("mLastCast", I64(-(1 << 40))),
        _field("mSeed", U64((1 << 64) - 1)),
        _field("mSize", Vec2((1.5, -2.0))),
        _field("mOffset", Vec3((0.0, 100.0, -0.5))),
        _field("mArea", Vec4((1.0, 2.0, 3.0, 4.0))),
        _field("mTransform", Mat4x4(identity)),
        _field("mColor", RGBA((255, 128, 0, 255))),
        _field("mEffect", Link(xxh64(EXAMPLE_LINKS[0]))),
        _field("mIcon", Link(xxh64(EXAMPLE_LINKS[1]))),
        _field("mBlob", ByteArray(b"\x00\x01\xfe\xff")),
        _field("mTags", List(Tag.STRING, [String("fire"), String("magic")])),
        _field("mLevels", List(Tag.EMBED, [
            Embedded(fnv1a("CastTiming"), [_field("mDelay", F32(0.5))]),
            Embedded(fnv1a("CastTiming"), []),
        ])),
        _field("mOldLevels", LegacyList(Tag.U32, [U32(1), U32(2), U32(3)])),
        _field("mCurve", Map(Tag.HASH, Tag.F32, [
            (Hash(fnv1a("mRange")), F32(600.0)),
            (Hash(fnv1a("mDelay")), F32(0.1)),
        ])),
        _field("mRanges", Option(Tag.F32, F32(625.0))),
        _field("mNothing", Option(Tag.STRING)),
        _field("mFlags", Flag(0b00000101)),
        _field("mSpellRef", Reference(fnv1a("VfxSystemDefinitionData"))),
        _field("mUnused", NoneValue()),
    ])


def build_example_document() -> Document:
    """A version 3 property file with one entry using every type tag."""
    return Document(
        entries=[
            build_example_spell(),
            Entry(0x1A2B3C4D, [Field(0x11223344, I32(42))]),
        ],
        version=3,
        linked=[LINKED_FILE],
    )


def build_example_patch_document() -> Document:
    """A patch file overriding the spell range."""
    return Document(
        entries=[],
        version=3,
        patch=True,
        patches=[Patch(fnv1a("Characters/Annie/Spells/Fireball"), "mData.mRange", F32(600.0))],
    )
